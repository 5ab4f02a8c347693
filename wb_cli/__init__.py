"""SQL workbench: guarded execution, query building, autocomplete and profiling."""

__version__ = "0.1.0"
