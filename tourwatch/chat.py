"""Interactive tour chat backed by an Ollama model server."""

from __future__ import annotations

import ipaddress
import json
import os
import sys
from datetime import datetime
from typing import Any, Callable, TextIO

import requests

from tourwatch.storage import StorageClient
from tourwatch.tools import GetAllToursInput, Tools

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_DEFAULT_HOST = "127.0.0.1"


class OllamaError(Exception):
    """The model server reported an error."""


def _format_rfc1123(moment: datetime) -> str:
    zone = moment.tzname() or "UTC"
    return (
        f"{_WEEKDAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} "
        f"{moment.year:04d} {moment:%H:%M:%S} {zone}"
    )


def _split_host_port(hostport: str) -> tuple[str, str] | None:
    if hostport.startswith("["):
        closing = hostport.find("]:")
        if closing < 0:
            return None
        return hostport[1:closing], hostport[closing + 2 :]
    host, sep, port = hostport.rpartition(":")
    if not sep or ":" in host:
        return None
    return host, port


def _is_ip(text: str) -> bool:
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


class OllamaClient:
    """A client for the chat endpoint of an Ollama server."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_environment(cls) -> OllamaClient:
        """A client for the server named by OLLAMA_HOST, or the local default."""
        raw = os.environ.get("OLLAMA_HOST", "").strip().strip("\"'").strip()
        default_port = "11434"
        scheme, sep, hostport = raw.partition("://")
        if not sep:
            scheme, hostport = "http", raw
        elif scheme == "http":
            default_port = "80"
        elif scheme == "https":
            default_port = "443"
        hostport, _, path = hostport.partition("/")

        split = _split_host_port(hostport)
        if split is None:
            host, port = _DEFAULT_HOST, default_port
            bare = hostport.strip("[]")
            if _is_ip(bare):
                host = str(ipaddress.ip_address(bare))
            elif hostport:
                host = hostport
        else:
            host, port = split

        if not port.isdigit() or int(port) > 65535:
            host, port = _DEFAULT_HOST, default_port

        netloc = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
        url = f"{scheme}://{netloc}"
        if path:
            url += "/" + path
        return cls(url)

    def chat(self, request: dict, on_response: Callable[[dict], None]) -> None:
        """Send a chat request and pass each streamed response to on_response."""
        with requests.post(
            f"{self.base_url}/api/chat",
            json=request,
            stream=True,
            headers={"Accept": "application/x-ndjson"},
        ) as response:
            if response.status_code >= 400:
                text = response.text
                try:
                    message = json.loads(text).get("error") or text
                except (ValueError, AttributeError):
                    message = text
                raise OllamaError(f"{response.status_code}: {message}")
            for line in response.iter_lines():
                if not line:
                    continue
                data = json.loads(line)
                if isinstance(data, dict) and data.get("error"):
                    raise OllamaError(str(data["error"]))
                on_response(data)


class ChatHandler:
    """Holds a conversation and answers tool calls the model makes during it."""

    def __init__(
        self,
        client: Any,
        messages: list[dict],
        tools: Tools,
        out: TextIO | None = None,
    ) -> None:
        self.client = client
        self.messages = messages
        self.tools = tools
        self.out = out
        self.response_message: list[str] = []
        self.using_tool = False
        self.done = False

    def _write(self, text: str) -> None:
        out = self.out if self.out is not None else sys.stdout
        out.write(text)
        out.flush()

    def do_chat(self, model: str) -> None:
        """Ask the model until it has answered the latest message, running any tools it calls."""
        self.done = False
        self.using_tool = False
        while not self.done:
            request = {
                "model": model,
                "messages": self.messages,
                "tools": self.tools.definitions(),
                "think": False,
            }
            self.response_message = []
            self.client.chat(request, self.handle_response)
            if self.response_message:
                self.messages.append(
                    {"role": "assistant", "content": "".join(self.response_message)}
                )

    def handle_response(self, response: dict) -> None:
        """Handle one streamed response: run a tool call or print and collect content."""
        message = response.get("message") or {}
        tool_calls = message.get("tool_calls") or []
        if tool_calls:
            self.messages.append(message)
            self.using_tool = True
            function = tool_calls[0].get("function") or {}
            content = self.tools.execute(function.get("name", ""), function.get("arguments"))
            self.messages.append({"role": "tool", "content": content})
            return

        content = message.get("content") or ""
        self._write(content)
        if content:
            self.response_message.append(content)

        # After a tool call the model reports done but still has to answer the prompt.
        if response.get("done"):
            if self.using_tool:
                self.using_tool = False
                return
            self.done = True


def chat(storage: StorageClient, model: str, ventrata_token: str, walks_token: str) -> None:
    """Chat with the model on standard input and output until input ends."""
    client = OllamaClient.from_environment()
    tools = Tools(storage, ventrata_token, walks_token)
    try:
        all_tours = tools.get_all_tours(GetAllToursInput())
    except Exception:
        all_tours = ""

    handler = ChatHandler(
        client,
        [
            {
                "role": "system",
                "content": f"The current time is {_format_rfc1123(datetime.now().astimezone())}",
            },
            {
                "role": "system",
                "content": (
                    f"Here are the tours: {all_tours}. "
                    "Use this information if the user asks about a specific tour."
                ),
            },
        ],
        tools,
        out=sys.stdout,
    )

    while True:
        sys.stdout.write(">>> ")
        sys.stdout.flush()
        line = sys.stdin.readline()
        if not line:
            break
        handler.messages.append({"role": "user", "content": line.rstrip("\r\n")})
        handler.do_chat(model)
        sys.stdout.write("\n")