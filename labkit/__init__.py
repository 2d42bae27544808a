"""Malloc trace driver with a simulated heap, function timers, robust I/O, socket helpers and a CGI adder."""

__version__ = "0.1.0"