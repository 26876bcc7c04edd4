"""Fleet CNP Workbench - Contract Net task allocation for heterogeneous farm fleets."""

__version__ = "1.0.0"
