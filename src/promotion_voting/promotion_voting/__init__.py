"""Promotion / demotion voting engine.

Feature modules (statistics, campaigns, candidates, voting, results, ...)
follow the same layering: frozen dataclass models, Protocol repositories,
services holding the rules, MySQL adapters and thin Flask controllers.
"""
