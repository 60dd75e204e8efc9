"""Agent Card discovery.

Fetches the descriptor a remote agent publishes under its well-known path.
Nothing is cached: each delegation resolves the card again.
"""

import logging

import httpx

from .errors import ConfigurationError, ResolutionError
from .types import AgentCard

logger = logging.getLogger(__name__)

AGENT_CARD_PATH = "/.well-known/agent-card.json"
LEGACY_AGENT_CARD_PATH = "/.well-known/agent.json"


async def _fetch(
    http: httpx.AsyncClient,
    url: str,
    agent_name: str | None,
    headers: dict[str, str],
) -> httpx.Response:
    try:
        return await http.get(url, headers=headers)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"{url!r} is not a valid URL", agent=agent_name) from e
    except httpx.TimeoutException as e:
        raise ResolutionError(f"timed out fetching {url}", agent=agent_name) from e
    except httpx.HTTPError as e:
        raise ResolutionError(f"could not fetch {url}: {e}", agent=agent_name) from e


async def resolve_agent_card(
    http: httpx.AsyncClient,
    base_url: str,
    agent_name: str | None = None,
    auth_token: str | None = None,
    card_path: str = AGENT_CARD_PATH,
) -> AgentCard:
    """Fetch and parse the Agent Card published under ``base_url``.

    Falls back once to the legacy ``/.well-known/agent.json`` path when the
    current path answers 404.

    Raises:
        ResolutionError: On network failure, a non-2xx answer (including
            401/403 auth rejections), a body that is not JSON, or a card
            missing required fields.
    """
    if not base_url:
        raise ResolutionError("no base URL given", agent=agent_name)

    headers = {"Accept": "application/json"}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"

    base = base_url.rstrip("/")
    url = f"{base}{card_path}"
    response = await _fetch(http, url, agent_name, headers)

    if response.status_code == 404 and card_path != LEGACY_AGENT_CARD_PATH:
        logger.info(f"No agent card at {url}, trying legacy path")
        url = f"{base}{LEGACY_AGENT_CARD_PATH}"
        response = await _fetch(http, url, agent_name, headers)

    if response.status_code in (401, 403):
        reason = "missing or malformed token" if response.status_code == 401 else "expired or invalid token"
        raise ResolutionError(
            f"{response.status_code}: {reason}",
            agent=agent_name,
            status_code=response.status_code,
        )
    if response.is_error:
        raise ResolutionError(
            f"agent card request to {url} returned HTTP {response.status_code}",
            agent=agent_name,
            status_code=response.status_code,
        )

    try:
        document = response.json()
    except ValueError as e:
        raise ResolutionError(f"agent card at {url} is not valid JSON", agent=agent_name) from e
    if not isinstance(document, dict):
        raise ResolutionError(f"agent card at {url} is not a JSON object", agent=agent_name)

    try:
        card = AgentCard.from_dict(document)
    except ValueError as e:
        raise ResolutionError(str(e), agent=agent_name) from e

    logger.info(
        f"Resolved agent card for {card.name} v{card.version} "
        f"(transport={card.preferred_transport}, streaming={card.capabilities.streaming})"
    )
    return card
