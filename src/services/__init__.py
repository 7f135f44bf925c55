"""Domain services used by the handlers and scheduled jobs.

Handlers build these lazily (see ``handlers.dependencies``) so importing a
handler never opens a database connection or an AWS client.
"""
