"""
Job accounting and lifecycle.

``JobLifecycle`` lives in ``carving.jobs.lifecycle``; it depends on the
workspace manager, which in turn depends on the accounting types here.
"""

from .accounting import SUMMARY_SUBJECT, JobTotals, JobTotalsSnapshot, build_summary_message

__all__ = ["SUMMARY_SUBJECT", "JobTotals", "JobTotalsSnapshot", "build_summary_message"]
