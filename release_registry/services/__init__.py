"""
Release harvesting, aggregation and cache orchestration for the registry.

This package is responsible for:
* Talking to the GitHub GraphQL and REST APIs.
* Turning release assets into normalized version records.
* Serving reads from the cache and refreshing it in the background.
* Looking up the signing keys published for a namespace.
"""
