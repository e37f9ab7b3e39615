"""doccontrol: evidence-grounded document control."""

__version__ = "0.1.0"
