"""
Redis key pattern constants for anonymous progress

All keys are namespaced under a configurable prefix (``hackpath`` by default)
to avoid collisions with other apps sharing the Redis instance.

Key patterns follow namespace format: {namespace}:{type}:{identifier}
"""

LOCAL_PROGRESS_KEY = "{namespace}:local_progress:{visitor_id}"
LOCAL_ROUTINES_KEY = "{namespace}:local_routines:{visitor_id}"


def get_local_progress_key(namespace, visitor_id):
    """Get Redis key for a visitor's level/hack/check progress container"""
    return LOCAL_PROGRESS_KEY.format(namespace=namespace, visitor_id=visitor_id)


def get_local_routines_key(namespace, visitor_id):
    """Get Redis key for a visitor's bounded routine progress container"""
    return LOCAL_ROUTINES_KEY.format(namespace=namespace, visitor_id=visitor_id)
