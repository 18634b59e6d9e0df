"""Job orchestration layer bridging HTTP requests and the external pipeline.

A job is one submission: its documents are staged under a private
directory, the pipeline runs as exactly one subprocess under a global slot
cap, the captured stdout is classified, a successful artifact is stored and
the staged files are removed whatever happened.
"""
