"""
Retouch

Portrait edit worker: analyzes a photo once, then runs several independent
variation pipelines that apply and validate one fix at a time.
"""

__version__ = "0.1.0"
