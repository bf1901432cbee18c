# tools.py
# Concrete capabilities. Each takes the decoded argument object and returns
# an acknowledgement string. The runtime never calls these directly; it
# goes through a ToolDispatcher built from build_registry().

import logging
import os
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
from pathlib import Path
from typing import Any

from chatmind.dispatcher import Tool, ToolKind, ToolRegistry

logger = logging.getLogger(__name__)

SUMMARY_LIMIT = 4000
HTTP_TIMEOUT = 10


def _tool_echo(args: dict) -> str:
    return str(args.get("message", ""))


def _tool_search(args: dict) -> str:
    from ddgs import DDGS
    query = str(args.get("query", "")).strip()
    if not query:
        return "Error: no query provided."

    try:
        # Coerce the generator to a list to ensure actual execution
        results = list(DDGS().text(query, max_results=4))
    except Exception as e:
        return f"Search failed: {e}"

    if not results:
        return "No results found."

    lines = []
    for r in results:
        lines.append(f"[{r.get('title', 'No Title')}]\n{r.get('body', '')}\nSource: {r.get('href', '')}")
    return "\n\n".join(lines)


def _tool_summarize(args: dict) -> str:
    text = str(args.get("text", "")).strip()
    if not text:
        return "Error: no text provided."
    return text[:SUMMARY_LIMIT]


def _workspace_root() -> Path:
    return Path(os.getenv("CHATMIND_WORKSPACE", "workspace")).resolve()


def _tool_file_write(args: dict) -> str:
    path = str(args.get("path", "")).strip()
    content = str(args.get("content", ""))
    if not path:
        return "Error: no path provided."

    root = _workspace_root()
    target = (root / path).resolve()
    if not target.is_relative_to(root):
        return f"SECURITY BLOCK: '{path}' resolves outside the workspace."

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return f"Wrote {len(content)} bytes to {target.relative_to(root)}."


def _tool_http_post(args: dict) -> str:
    import httpx
    url = str(args.get("url", "")).strip()
    payload = args.get("payload") or {}
    if not url:
        return "Error: no URL provided."
    if not url.startswith(("http://", "https://")):
        return f"Error: unsupported URL scheme in '{url}'."

    try:
        response = httpx.post(url, json=payload, timeout=HTTP_TIMEOUT)
    except httpx.HTTPError as e:
        return f"POST failed: {e}"
    return f"POST {url} -> {response.status_code} ({len(response.content)} bytes)"


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


def _smtp_send(message: EmailMessage) -> None:
    host = os.getenv("CHATMIND_SMTP_HOST", "localhost")
    port = int(os.getenv("CHATMIND_SMTP_PORT", "465"))
    user = os.getenv("CHATMIND_SMTP_USER")
    password = os.getenv("CHATMIND_SMTP_PASSWORD")
    with smtplib.SMTP_SSL(host, port, timeout=30) as smtp:
        if user:
            smtp.login(user, password or "")
        smtp.send_message(message)


class EmailService:
    """
    Fire-and-forget mail delivery. send_async() returns as soon as the job
    is queued; failures are logged from the worker thread.
    """

    def __init__(self, sender=_smtp_send, sender_address: str | None = None, max_workers: int = 2) -> None:
        self._sender = sender
        self._from = sender_address or os.getenv("CHATMIND_SMTP_FROM", "")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="email")

    def _deliver(self, to: str, subject: str, content: str) -> None:
        message = EmailMessage()
        message["To"] = to
        message["Subject"] = subject
        if self._from:
            message["From"] = self._from
        message.set_content(content)
        try:
            self._sender(message)
            logger.info("Email sent to %s, subject=%r", to, subject)
        except Exception:
            logger.error("Email delivery to %s failed, subject=%r", to, subject, exc_info=True)

    def send_async(self, to: str, subject: str, content: str) -> Future:
        return self._executor.submit(self._deliver, to, subject, content)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def make_send_email(service: EmailService):
    def _tool_send_email(args: dict) -> str:
        to = str(args.get("to") or "").strip()
        subject = str(args.get("subject") or "").strip()
        content = str(args.get("content") or "").strip()
        if not to:
            return "Error: recipient address is required."
        if not subject:
            return "Error: subject is required."
        if not content:
            return "Error: content is required."
        if "@" not in to:
            return "Error: recipient address is malformed."

        service.send_async(to, subject, content)
        logger.info("Email queued for %s, subject=%r", to, subject)
        return f"Email submitted.\nTo: {to}\nSubject: {subject}\nDelivery is running in the background."

    return _tool_send_email


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _schema(**properties: Any) -> dict:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
    }


_STRING = {"type": "string"}


def build_registry(email_service: EmailService | None = None) -> ToolRegistry:
    """
    Default capability catalogue: echo/summarize fixed, the rest opt-in.

    Pass one long-lived EmailService and shut it down when done; without
    one, a new worker pool is created for this registry.
    """
    if email_service is None:
        email_service = EmailService()
    return ToolRegistry(
        [
            Tool(
                name="echo",
                fn=_tool_echo,
                description="Repeat a message back verbatim.",
                parameters=_schema(message=_STRING),
            ),
            Tool(
                name="summarize",
                fn=_tool_summarize,
                description=f"Trim text to at most {SUMMARY_LIMIT} characters.",
                parameters=_schema(text=_STRING),
            ),
            Tool(
                name="search",
                fn=_tool_search,
                description="Search the web and return the top results.",
                parameters=_schema(query=_STRING),
                kind=ToolKind.OPTIONAL,
            ),
            Tool(
                name="file_write",
                fn=_tool_file_write,
                description="Write text to a file inside the agent workspace.",
                parameters=_schema(path=_STRING, content=_STRING),
                kind=ToolKind.OPTIONAL,
            ),
            Tool(
                name="http_post",
                fn=_tool_http_post,
                description="POST a JSON payload to a URL.",
                parameters=_schema(url=_STRING, payload={"type": "object"}),
                kind=ToolKind.OPTIONAL,
            ),
            Tool(
                name="send_email",
                fn=make_send_email(email_service),
                description=(
                    "Send an email. Delivery is asynchronous: the call returns "
                    "immediately and the mail is sent in the background."
                ),
                parameters=_schema(to=_STRING, subject=_STRING, content=_STRING),
                kind=ToolKind.OPTIONAL,
            ),
        ]
    )
