"""
Trialflow Kernel

The transactional core of product-testing sessions:
- Session lifecycle state machine with role checks
- Atomic campaign slot accounting
- Ordered procedure step tracking with per-type validation
- Load-balanced purchase date scheduling
- Deadline expiry compensation
"""

__version__ = "0.1.0"
