"""Asynchronous job dispatch for meme generation.

A create request stores a pending meme and returns; the task processor then
owns the slow part. A fixed pool of worker threads polls the external
generation service for each queued meme, stores the finished image and marks
the record ``completed`` or ``failed``. A stuck-job scanner periodically puts
stale, unowned memes back into the queue. An in-flight tracker keeps at most
one worker per meme.
"""
