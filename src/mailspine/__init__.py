"""
Mailspine - scheduled dispatch for message templates.

- mailspine.core: errors, logging, settings, persistence primitives
- mailspine.core.scheduling: recurrence, reconciliation, due-item queries
  and the dispatch driver
- mailspine.cli: ``mailspine`` command line
"""

__version__ = "0.1.0"
