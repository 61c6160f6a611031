"""Data input/output helpers (wire packets and CSV output).

Utility modules here keep transport- and disk-level concerns out of the
resampling core:
- :mod:`packets` decodes the JSON packets delivered by the network link.
- :mod:`csv_writer` writes resampled points for offline review.
"""
