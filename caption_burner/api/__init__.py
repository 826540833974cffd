"""caption-burner API client package — async HTTP interface to a running server.

WHY: Remote burn-ins (CLI ``submit``, scripts, other services) need to
upload a video, start an export, poll for completion, and download the
result without knowing the HTTP routes.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. The BurnInClient
class provides one method per workflow step.
"""
