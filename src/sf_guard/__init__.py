"""Guard against overwriting Salesforce org changes made by someone else."""

__version__ = "0.1.0"
