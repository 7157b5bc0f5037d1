"""HR sync package.

Feature modules (attendance, expenses, tasks) share one reconciling record
store: normalizer, optimistic merge buffer, view projector and change feed
subscriber, wired behind a thin Flask controller layer.
"""
