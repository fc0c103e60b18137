"""tracer-stream server components.

Entry points live in :mod:`tracer_stream.server.app`. Rendering state and the
progressive sample loop live in `server/rendering`, inbound control parsing in
`server/control`, and outbound frame pacing in `server/pixel`.
"""

__all__ = []
