"""Google Drive resolver: multi-approach download cascade.

Drive hands large or unscanned files out behind a confirmation page, a
cookie handshake and a couple of redirects.  Resolution runs in three
phases:

1. **Final URL**: walk the approach list (authenticated API when a key is
   configured, then the ``uc?export=download`` variants).  A redirect, a
   submitted confirmation form or a direct media answer yields the URL
   to fetch.
2. **Metadata probe** (optional, best effort): ask the Drive API for a
   ``webContentLink`` and stream it if it answers with media.
3. **Fetch loop**: GET the final URL until a media response arrives,
   handling confirmation pages, viewer redirects, confirm tokens,
   external CDN redirects and 429/5xx backoff.

A redirect or confirm token is never success on its own; only a
non-HTML media response ends the cascade.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from urllib.parse import urljoin

import httpx
import structlog

from vidrelay.domain.entities.media import (
    DEFAULT_RANGE,
    InputError,
    Provider,
    ResolutionApproach,
    ResolvedStream,
    UpstreamRateLimited,
    UpstreamUnavailable,
    extract_drive_id,
)
from vidrelay.domain.ports.interstitial_parser import (
    InterstitialForm,
    InterstitialParserPort,
)
from vidrelay.infrastructure.common.cookies import CookieJar
from vidrelay.infrastructure.common.media_types import (
    base_content_type,
    is_hls,
    is_html,
    is_media_response,
)
from vidrelay.infrastructure.common.retry import RetryPolicy
from vidrelay.infrastructure.config.schema import ResolverConfig
from vidrelay.infrastructure.resolvers.constants import MEDIA_HEADERS, PAGE_HEADERS
from vidrelay.infrastructure.resolvers.interstitial import SoupInterstitialParser
from vidrelay.infrastructure.streaming.forwarder import stream_from_response

log = structlog.get_logger(__name__)

DRIVE_ORIGIN = "https://drive.google.com"
_DRIVE_API_FILES = "https://www.googleapis.com/drive/v3/files"
_METADATA_FIELDS = "name,size,mimeType,webContentLink,webViewLink"
_MIN_API_KEY_LENGTH = 20

_VIEWER_PATH_RE = re.compile(r"/file/d/([^/?#]+)")

REMEDIATION = (
    "Could not access the Google Drive file. Please check that:\n"
    '1. The file is shared as "Anyone with the link can view"\n'
    "2. The file is smaller than 100MB (larger files may need a "
    "Google Drive API key)\n"
    "3. The Google Drive link is correct\n"
    "4. Large files have had a few minutes to finish processing on "
    "Google Drive\n"
    "5. Alternatively, upload the video to another host such as YouTube "
    "and share it from there"
)


def build_approaches(file_id: str, api_key: str | None) -> list[ResolutionApproach]:
    """Ordered download approaches for *file_id*."""
    approaches: list[ResolutionApproach] = []
    if api_key and len(api_key) >= _MIN_API_KEY_LENGTH:
        approaches.append(
            ResolutionApproach(
                name="drive-api",
                url=f"{_DRIVE_API_FILES}/{file_id}?alt=media&key={api_key}",
                uses_authenticated_api=True,
            )
        )
    base = f"{DRIVE_ORIGIN}/uc?export=download&id={file_id}"
    approaches.extend(
        [
            ResolutionApproach(name="confirm-t-uuid", url=f"{base}&confirm=t&uuid="),
            ResolutionApproach(name="confirm-t", url=f"{base}&confirm=t"),
            ResolutionApproach(name="plain", url=base),
        ]
    )
    return approaches


def _confirm_url(file_id: str, token: str) -> str:
    return f"{DRIVE_ORIGIN}/uc?export=download&id={file_id}&confirm={token}"


def _with_cache_buster(url: str) -> httpx.URL:
    return httpx.URL(url).copy_merge_params({"uuid": str(uuid.uuid4())})


def _failure_details(last_failure: str | None) -> str:
    if not last_failure:
        return REMEDIATION
    return f"{REMEDIATION}\n\nLast error: {last_failure}"


class GoogleDriveResolver:
    """``StreamResolverPort`` for Google Drive file ids."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        config: ResolverConfig,
        user_agent: str,
        api_key: str | None = None,
        retry_policy: RetryPolicy | None = None,
        parser: InterstitialParserPort | None = None,
    ) -> None:
        self._http = http_client
        self._config = config
        self._user_agent = user_agent
        self._api_key = api_key
        self._retry = retry_policy or RetryPolicy.from_config(config)
        self._parser = parser or SoupInterstitialParser()

    @property
    def provider(self) -> Provider:
        return Provider.GOOGLE_DRIVE

    async def resolve(
        self, identifier: str, range_header: str | None = None, depth: int = 0
    ) -> ResolvedStream:
        file_id = extract_drive_id(identifier)
        if not file_id:
            raise InputError("Invalid Google Drive id format.")
        return await self._resolve(file_id, range_header or DEFAULT_RANGE, depth)

    async def _resolve(
        self, file_id: str, range_header: str, depth: int
    ) -> ResolvedStream:
        jar = CookieJar()
        log.info("gdrive_resolve_started", file_id=file_id, depth=depth)

        final_url = await self._obtain_final_url(file_id, jar, range_header)

        if self._config.metadata_probe_enabled:
            probed = await self._probe_metadata(file_id, range_header)
            if probed is not None:
                return probed

        return await self._fetch_final(file_id, final_url, jar, range_header, depth)

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    def _page_headers(self, jar: CookieJar, range_header: str) -> dict[str, str]:
        return jar.apply(
            {**PAGE_HEADERS, "User-Agent": self._user_agent, "Range": range_header}
        )

    def _media_headers(self, jar: CookieJar | None, range_header: str) -> dict[str, str]:
        headers = {
            **MEDIA_HEADERS,
            "User-Agent": self._user_agent,
            "Referer": f"{DRIVE_ORIGIN}/",
            "Origin": DRIVE_ORIGIN,
            "Range": range_header,
        }
        return jar.apply(headers) if jar is not None else headers

    # ------------------------------------------------------------------
    # Phase 1: final URL
    # ------------------------------------------------------------------

    async def _obtain_final_url(
        self, file_id: str, jar: CookieJar, range_header: str
    ) -> str:
        last_failure: str | None = None
        for approach in build_approaches(file_id, self._api_key):
            try:
                final_url = await self._try_approach(
                    approach, file_id, jar, range_header
                )
            except httpx.HTTPError as exc:
                last_failure = f"{approach.name}: {exc}"
                log.warning(
                    "gdrive_approach_error",
                    file_id=file_id,
                    approach=approach.name,
                    error=str(exc),
                )
                continue
            if final_url:
                return final_url
            last_failure = f"{approach.name}: no download URL"

        log.warning("gdrive_approaches_exhausted", file_id=file_id)
        raise UpstreamUnavailable(
            "Could not access the Google Drive file.",
            kind="all-attempts-failed",
            details=_failure_details(last_failure),
        )

    async def _try_approach(
        self,
        approach: ResolutionApproach,
        file_id: str,
        jar: CookieJar,
        range_header: str,
    ) -> str | None:
        def build() -> httpx.Request:
            return self._http.build_request(
                "GET",
                _with_cache_buster(approach.url),
                headers=self._page_headers(jar, range_header),
                timeout=self._config.page_timeout_seconds,
            )

        resp = await self._retry.send(self._http, build)
        try:
            jar.absorb(resp)
            request_url = str(resp.request.url)

            if resp.is_redirect:
                location = urljoin(request_url, resp.headers["location"])
                log.info(
                    "gdrive_approach_redirect",
                    file_id=file_id,
                    approach=approach.name,
                    status=resp.status_code,
                )
                return location

            if resp.is_success:
                if is_html(resp.headers.get("content-type")):
                    await resp.aread()
                    return await self._final_url_from_interstitial(
                        resp.text, request_url, file_id, jar
                    )
                if is_media_response(resp.headers):
                    log.info(
                        "gdrive_approach_direct",
                        file_id=file_id,
                        approach=approach.name,
                    )
                    return approach.url
                log.info(
                    "gdrive_approach_unexpected_content",
                    file_id=file_id,
                    approach=approach.name,
                    content_type=resp.headers.get("content-type"),
                )
                return None

            log.info(
                "gdrive_approach_rejected"
                if self._retry.is_terminal(resp.status_code)
                else "gdrive_approach_retries_exhausted",
                file_id=file_id,
                approach=approach.name,
                status=resp.status_code,
            )
            return None
        finally:
            await resp.aclose()

    async def _final_url_from_interstitial(
        self, page_html: str, page_url: str, file_id: str, jar: CookieJar
    ) -> str | None:
        form = self._parser.parse_form(page_html)
        if form is None:
            token = self._parser.extract_confirm_token(page_html)
            if token:
                log.info("gdrive_confirm_token_found", file_id=file_id)
                return _confirm_url(file_id, token)
            log.info("gdrive_interstitial_without_form", file_id=file_id)
            return None

        action, data = self._form_submission(form, page_url, file_id)
        resp = await self._submit_form(action, data, page_url, jar, follow=False)
        try:
            if resp.is_redirect:
                log.info("gdrive_form_redirect", file_id=file_id)
                return urljoin(action, resp.headers["location"])
            if resp.is_success and is_media_response(resp.headers):
                return str(httpx.URL(action).copy_merge_params(data))
            log.info(
                "gdrive_form_no_redirect", file_id=file_id, status=resp.status_code
            )
            return None
        finally:
            await resp.aclose()

    def _form_submission(
        self, form: InterstitialForm, page_url: str, file_id: str
    ) -> tuple[str, dict[str, str]]:
        data = {
            **form.fields,
            "confirm": form.confirm_token,
            "id": file_id,
            "export": "download",
        }
        return urljoin(page_url, form.action), data

    async def _submit_form(
        self,
        action: str,
        data: dict[str, str],
        page_url: str,
        jar: CookieJar,
        *,
        follow: bool,
    ) -> httpx.Response:
        delay = self._config.form_submit_delay_seconds
        if delay > 0:
            await asyncio.sleep(delay)
        headers = jar.apply(
            {
                **PAGE_HEADERS,
                "User-Agent": self._user_agent,
                "Origin": DRIVE_ORIGIN,
                "Referer": page_url,
            }
        )
        resp = await self._http.send(
            self._http.build_request(
                "POST",
                action,
                data=data,
                headers=headers,
                timeout=self._config.page_timeout_seconds,
            ),
            stream=True,
            follow_redirects=follow,
        )
        jar.absorb(resp)
        return resp

    # ------------------------------------------------------------------
    # Phase 2: metadata probe
    # ------------------------------------------------------------------

    async def _probe_metadata(
        self, file_id: str, range_header: str
    ) -> ResolvedStream | None:
        params = {"fields": _METADATA_FIELDS}
        if self._api_key:
            params["key"] = self._api_key
        try:
            resp = await self._http.get(
                f"{_DRIVE_API_FILES}/{file_id}",
                params=params,
                headers={"Accept": "application/json", "User-Agent": self._user_agent},
                timeout=self._config.api_timeout_seconds,
            )
            if not resp.is_success:
                log.debug(
                    "gdrive_metadata_unavailable",
                    file_id=file_id,
                    status=resp.status_code,
                )
                return None
            data = resp.json()
            link = data.get("webContentLink") if isinstance(data, dict) else None
            if not link:
                return None

            media = await self._http.send(
                self._http.build_request(
                    "GET",
                    link,
                    headers=self._media_headers(None, range_header),
                    timeout=self._config.media_timeout_seconds,
                ),
                stream=True,
                follow_redirects=True,
            )
        except (httpx.HTTPError, ValueError) as exc:
            log.info("gdrive_metadata_probe_failed", file_id=file_id, error=str(exc))
            return None

        if media.is_success and not is_html(media.headers.get("content-type")):
            log.info("gdrive_metadata_link_streamed", file_id=file_id)
            return self._to_stream(media)
        await media.aclose()
        return None

    # ------------------------------------------------------------------
    # Phase 3: fetch loop
    # ------------------------------------------------------------------

    async def _fetch_final(
        self,
        file_id: str,
        final_url: str,
        jar: CookieJar,
        range_header: str,
        depth: int,
    ) -> ResolvedStream:
        url = final_url
        visited = {final_url}
        last_failure: str | None = None
        throttled = False
        attempts = max(1, self._retry.max_retries)

        for attempt in range(1, attempts + 1):
            throttled = False
            try:
                resp = await self._http.send(
                    self._http.build_request(
                        "GET",
                        url,
                        headers=self._media_headers(jar, range_header),
                        timeout=self._config.media_timeout_seconds,
                    ),
                    stream=True,
                )
            except httpx.HTTPError as exc:
                last_failure = str(exc)
                log.warning(
                    "gdrive_fetch_error",
                    file_id=file_id,
                    attempt=attempt,
                    error=last_failure,
                )
                continue

            jar.absorb(resp)
            content_type = resp.headers.get("content-type")

            if resp.is_success:
                if is_media_response(resp.headers):
                    log.info(
                        "gdrive_stream_ready",
                        file_id=file_id,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    return self._to_stream(resp)
                if is_html(content_type):
                    await resp.aread()
                    page_html = resp.text
                    await resp.aclose()
                    stream = await self._stream_from_interstitial(
                        page_html, url, file_id, jar
                    )
                    if stream is not None:
                        return stream
                    last_failure = "confirmation page could not be passed"
                    continue
                await resp.aclose()
                last_failure = f"unexpected content type {content_type}"
                continue

            if resp.is_redirect:
                location = urljoin(url, resp.headers["location"])
                await resp.aclose()

                if location.startswith(DRIVE_ORIGIN):
                    viewer = _VIEWER_PATH_RE.search(location)
                    if viewer:
                        return await self._follow_viewer_redirect(
                            viewer.group(1), range_header, depth
                        )
                    token = self._parser.extract_confirm_token(location)
                    if token:
                        log.info("gdrive_confirm_token_redirect", file_id=file_id)
                        url = _confirm_url(file_id, token)
                        continue
                    last_failure = f"redirected to {location[:120]}"
                    if location in visited:
                        log.info("gdrive_redirect_loop", file_id=file_id)
                        break
                    visited.add(location)
                    url = location
                    continue

                stream = await self._follow_external(location, range_header)
                if stream is not None:
                    return stream
                last_failure = f"external redirect failed: {location[:120]}"
                continue

            last_failure = f"HTTP {resp.status_code}"
            await resp.aclose()
            throttled = self._retry.is_retryable(resp.status_code)
            if throttled and attempt < attempts:
                await self._retry.wait(resp, attempt=attempt)

        log.warning(
            "gdrive_fetch_exhausted", file_id=file_id, last_failure=last_failure
        )
        error_cls = UpstreamRateLimited if throttled else UpstreamUnavailable
        raise error_cls(
            "All attempts to fetch the Google Drive file failed.",
            kind="google-drive-failed-all-attempts",
            details=_failure_details(last_failure),
        )

    async def _follow_viewer_redirect(
        self, new_id: str, range_header: str, depth: int
    ) -> ResolvedStream:
        if depth >= self._config.max_redirect_depth:
            raise UpstreamUnavailable(
                "Too many nested Google Drive redirects.",
                kind="redirect-depth-exceeded",
                details=_failure_details(f"redirect depth {depth} reached"),
            )
        log.info("gdrive_viewer_redirect", file_id=new_id, depth=depth + 1)
        return await self._resolve(new_id, range_header, depth + 1)

    async def _stream_from_interstitial(
        self, page_html: str, page_url: str, file_id: str, jar: CookieJar
    ) -> ResolvedStream | None:
        form = self._parser.parse_form(page_html)
        if form is None:
            return None
        action, data = self._form_submission(form, page_url, file_id)
        try:
            resp = await self._submit_form(action, data, page_url, jar, follow=True)
        except httpx.HTTPError as exc:
            log.info("gdrive_form_retry_failed", file_id=file_id, error=str(exc))
            return None
        if resp.is_success and is_media_response(resp.headers):
            return self._to_stream(resp)
        await resp.aclose()
        return None

    async def _follow_external(
        self, location: str, range_header: str
    ) -> ResolvedStream | None:
        try:
            resp = await self._http.send(
                self._http.build_request(
                    "GET",
                    location,
                    headers=self._media_headers(None, range_header),
                    timeout=self._config.media_timeout_seconds,
                ),
                stream=True,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            log.info("gdrive_external_redirect_failed", error=str(exc))
            return None
        if resp.is_success and not is_html(resp.headers.get("content-type")):
            return self._to_stream(resp)
        await resp.aclose()
        return None

    def _to_stream(self, resp: httpx.Response) -> ResolvedStream:
        headers = dict(resp.headers)
        content_type = headers.get("content-type", "")
        if not base_content_type(content_type).startswith("video/") and not is_hls(
            content_type
        ):
            headers["content-type"] = "video/mp4"
        headers.setdefault("accept-ranges", "bytes")
        return stream_from_response(
            resp, chunk_size=self._config.chunk_size, headers=headers
        )
