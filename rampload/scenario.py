"""Render request step templates for a given virtual user and iteration."""

import json
import re
from typing import Any, Dict, Optional, Tuple

from rampload.models import RequestStep

_PLACEHOLDER_RE = re.compile(r"\$\{(vu|iter)\}")


def render_template(text: str, vu: int, iteration: int) -> str:
    """Substitute ``${vu}`` and ``${iter}`` in *text*; any other ``$`` text is kept as is."""
    values = {"vu": str(vu), "iter": str(iteration)}
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], text)


def _render_value(value: Any, vu: int, iteration: int) -> Any:
    if isinstance(value, str):
        return render_template(value, vu, iteration)
    if isinstance(value, dict):
        return {k: _render_value(v, vu, iteration) for k, v in value.items()}
    if isinstance(value, list):
        return [_render_value(v, vu, iteration) for v in value]
    return value


def render_step(
    step: RequestStep,
    base_url: str,
    vu: int,
    iteration: int,
) -> Tuple[str, Dict[str, str], Optional[str]]:
    """Produce the concrete (url, headers, body) for one execution of *step*.

    Structured bodies are rendered leaf by leaf and encoded as JSON; a
    ``Content-Type`` header is added when the step does not set one.
    """
    url = render_template(step.url, vu, iteration)
    if not (url.startswith("http://") or url.startswith("https://")):
        url = base_url + "/" + url.lstrip("/")

    headers = {k: render_template(v, vu, iteration) for k, v in step.headers.items()}

    body = step.body
    if body is None:
        return url, headers, None
    if isinstance(body, (dict, list)):
        if not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
        return url, headers, json.dumps(_render_value(body, vu, iteration))
    return url, headers, render_template(str(body), vu, iteration)
