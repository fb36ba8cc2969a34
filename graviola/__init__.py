"""Configuration, time parsing, series, query limits, logging, metrics and a WSGI API for a Prometheus query proxy."""

__version__ = "0.1.0"