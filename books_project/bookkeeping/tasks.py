from celery import shared_task


@shared_task  # register this function as a Celery task
def run_upload_extraction(upload_id):
    # import services lazily to avoid circular imports at module import time
    from .services.extraction import process_upload_extraction

    # No automatic retries: a failed extraction is terminal and shown to
    # the user, who can still fill in the draft by hand
    return process_upload_extraction(upload_id)
