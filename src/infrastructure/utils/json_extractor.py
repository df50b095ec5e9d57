import json
import re
from typing import Any

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*\n(?P<body>.*?)\n\s*```", re.DOTALL)


def extract_json(response: str) -> Any:
    """Parse the JSON payload of a model reply.

    Accepts bare JSON, a fenced ```json block, or JSON embedded in prose
    (the first object or array that decodes cleanly wins).

    Raises:
        json.JSONDecodeError: If no JSON value can be found.
    """
    response = response.strip()

    fenced = _FENCED_BLOCK.search(response)
    if fenced:
        return json.loads(fenced.group("body"))

    try:
        return json.loads(response)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for index, char in enumerate(response):
        if char not in "[{":
            continue
        try:
            value, _ = decoder.raw_decode(response, index)
        except json.JSONDecodeError:
            continue
        return value

    raise json.JSONDecodeError("No JSON value found", response, 0)
