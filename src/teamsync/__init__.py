"""Keep GitHub repository collaborators in line with ERP project teams."""

__version__ = "0.1.0"
