"""Solar monitoring calculations: time-of-use savings and SDG impact."""

__version__ = "0.1.0"
