class ResourceConflict(Exception):
    """A shared row could not take the change; safe to retry the whole settlement."""

    retryable = True
