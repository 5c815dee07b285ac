"""MCP tools for managing the chat browser session."""

from __future__ import annotations

import json

import httpx

from ..config import SERVICE_URL


async def _call_session_manager(
    method: str, path: str, json_body: dict | None = None, timeout: float | None = 120.0
) -> dict:
    """Make a request to the translation service."""
    url = f"{SERVICE_URL}{path}"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            if method == "GET":
                resp = await client.get(url)
            else:
                resp = await client.post(url, json=json_body or {})

            if resp.status_code >= 400:
                data = resp.json()
                return {"error": data.get("error") or data.get("message") or f"HTTP {resp.status_code}"}
            return resp.json()

    except httpx.ConnectError:
        return {
            "error": "Translation service is not reachable at "
            f"{SERVICE_URL}. It should auto-start with the MCP server. "
            "If running standalone: quillsync-service"
        }
    except httpx.TimeoutException:
        return {"error": "Translation service timed out. The browser may be loading."}
    except Exception as e:
        return {"error": f"Failed to connect to translation service: {e}"}


async def start_session() -> str:
    """Open the chat surface for manual login.

    Waits until the user finishes signing in, then saves the cookies for
    later runs and lists the chat projects found in the sidebar.

    Returns:
        Login outcome and the scanned projects.
    """
    # Manual login waits on a human, so no client timeout
    result = await _call_session_manager("POST", "/start", timeout=None)

    if "error" in result:
        return f"Error: {result['error']}"

    message = result.get("message", "")
    if not result.get("success"):
        return f"Login failed. {message}"

    projects = result.get("projects", [])
    if not projects:
        return f"Logged in. {message}"
    lines = [f"Logged in. {message}", "", "Projects:"]
    for project in projects:
        lines.append(f"- {project['name']} ({project['href']})")
    return "\n".join(lines)


async def verify_login() -> str:
    """Check whether the saved cookies still sign in to the chat surface.

    Returns:
        Verification result message.
    """
    result = await _call_session_manager("GET", "/verify-login")

    if "error" in result:
        return f"Error: {result['error']}"

    if result.get("success"):
        return f"Login verified. {result.get('message', '')}"
    return f"Not logged in. {result.get('message', '')}"


async def session_status() -> str:
    """Report browser state, saved cookie count and cached chapters.

    Returns:
        JSON-formatted session status.
    """
    result = await _call_session_manager("GET", "/status")

    if "error" in result:
        return f"Error: {result['error']}"

    return json.dumps(result, indent=2)


async def stop_session() -> str:
    """Close the browser. Saved cookies remain for the next session.

    Returns:
        Confirmation message.
    """
    result = await _call_session_manager("POST", "/stop")

    if "error" in result:
        return f"Error: {result['error']}"

    return result.get("message", "Session stopped.")
