"""InnodataLabs prediction API client.

WHY: The ilabs prediction microservices process documents asynchronously:
content is uploaded, a job is started against a prediction domain, and the
processed document is fetched once the job finishes. Callers should not have
to hand-roll that lifecycle for every integration.

HOW: A single async client (ilabs_api.api.IlabsClient) wraps each HTTP step
and the polling loop that ties them together. Defaults live in
ilabs_api.config.

RULES:
- All HTTP calls go through IlabsClient
- The client never persists state between runs
"""

__version__ = "0.1.0"
