"""HTTP probe of the load balancer endpoint.

An NLB hostname resolves a few minutes after the Service is created, so
the probe retries connection failures and gateway errors with backoff.
"""

import requests
from icecream import ic
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from eks_deploy_auto import console
from eks_deploy_auto.exceptions import EndpointUnavailableError


def _session(attempts: int, backoff: float) -> requests.Session:
    retry = Retry(
        total=attempts,
        connect=attempts,
        read=attempts,
        backoff_factor=backoff,
        status_forcelist=(502, 503, 504),
        allowed_methods=("GET",),
        raise_on_status=False,
    )
    session = requests.Session()
    session.mount("http://", HTTPAdapter(max_retries=retry))
    session.mount("https://", HTTPAdapter(max_retries=retry))
    return session


def probe_endpoint(
    hostname: str,
    port: int = 80,
    *,
    path: str = "/",
    scheme: str = "http",
    attempts: int = 5,
    backoff: float = 2.0,
    timeout: float = 10.0,
) -> int:
    """Send a GET request to the load balancer.

    Args:
        hostname: Load balancer DNS name.
        port: Listener port.
        path: Request path.
        scheme: ``http`` or ``https``.
        attempts: Retries for connection failures and 502/503/504.
        backoff: Backoff factor between retries, in seconds.
        timeout: Per-request timeout, in seconds.

    Returns:
        The HTTP status code of the final response.

    Raises:
        EndpointUnavailableError: If the hostname is empty, the endpoint never
            answers, or it answers with a server error.

    """
    if not hostname:
        raise EndpointUnavailableError("Load balancer has no hostname yet")

    url = f"{scheme}://{hostname}:{port}{path}"
    ic(url)

    with _session(attempts, backoff) as session:
        try:
            with console.spinner(f"Probing {url}..."):
                response = session.get(url, timeout=timeout)
        except requests.RequestException as err:
            raise EndpointUnavailableError(f"{url} is not reachable: {err}") from err

    if response.status_code >= 500:
        raise EndpointUnavailableError(f"{url} answered with HTTP {response.status_code}")

    console.success(f"{url} answered with HTTP {response.status_code}")
    return response.status_code
