"""Tests for source detection."""

from __future__ import annotations

import pytest

from vidrelay.domain.entities.media import Provider
from vidrelay.infrastructure.detection.source_detector import (
    detect_source,
    extract_drive_file_id,
)

_DRIVE_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz012345"


class TestGoogleDrive:
    def test_viewer_url(self) -> None:
        url = f"https://drive.google.com/file/d/{_DRIVE_ID}/view?usp=sharing"
        ref = detect_source(url)
        assert ref.provider is Provider.GOOGLE_DRIVE
        assert ref.identifier == _DRIVE_ID
        assert ref.original == url

    def test_id_query_param(self) -> None:
        ref = detect_source(f"https://drive.google.com/uc?export=download&id={_DRIVE_ID}")
        assert ref.provider is Provider.GOOGLE_DRIVE
        assert ref.identifier == _DRIVE_ID

    def test_open_id_url(self) -> None:
        ref = detect_source(f"https://drive.google.com/open?id={_DRIVE_ID}")
        assert ref.identifier == _DRIVE_ID

    def test_usercontent_download_path(self) -> None:
        ref = detect_source(f"https://drive.usercontent.google.com/download/{_DRIVE_ID}")
        assert ref.provider is Provider.GOOGLE_DRIVE
        assert ref.identifier == _DRIVE_ID

    def test_whitespace_trimmed(self) -> None:
        ref = detect_source(f"   https://drive.google.com/file/d/{_DRIVE_ID}/view \n")
        assert ref.identifier == _DRIVE_ID
        assert ref.original == f"https://drive.google.com/file/d/{_DRIVE_ID}/view"

    def test_drive_host_without_id_is_unknown(self) -> None:
        assert detect_source("https://drive.google.com/drive/my-drive").provider is (
            Provider.UNKNOWN
        )


class TestExtractDriveFileId:
    @pytest.mark.parametrize(
        "url",
        [
            f"https://drive.google.com/file/d/{_DRIVE_ID}/view",
            f"https://drive.google.com/file/d/{_DRIVE_ID}",
            f"https://drive.google.com/uc?id={_DRIVE_ID}&export=download",
            f"https://docs.google.com/uc?export=download&id={_DRIVE_ID}",
        ],
    )
    def test_extracts_exact_id(self, url: str) -> None:
        assert extract_drive_file_id(url) == _DRIVE_ID

    def test_none_when_missing(self) -> None:
        assert extract_drive_file_id("https://drive.google.com/") is None


class TestVidmoly:
    def test_embed_url(self) -> None:
        ref = detect_source("https://vidmoly.to/embed-abc123xyz.html")
        assert ref.provider is Provider.VIDMOLY
        assert ref.identifier == "embed-abc123xyz.html"

    def test_short_slug_rejected(self) -> None:
        assert detect_source("https://vidmoly.me/abc").provider is Provider.UNKNOWN


class TestOtherHosts:
    def test_voe(self) -> None:
        ref = detect_source("https://voe.sx/e/xyz987")
        assert ref.provider is Provider.VOE
        assert ref.identifier == "xyz987"

    def test_streamtape(self) -> None:
        url = "https://streamtape.com/v/abc/movie"
        ref = detect_source(url)
        assert ref.provider is Provider.STREAMTAPE
        assert ref.identifier == url

    def test_dood(self) -> None:
        assert detect_source("https://dood.watch/e/abc").provider is Provider.DOOD

    def test_unmatched_host_is_unknown(self) -> None:
        ref = detect_source("https://example.com/watch")
        assert ref.provider is Provider.UNKNOWN
        assert ref.identifier == "https://example.com/watch"


class TestExtensions:
    @pytest.mark.parametrize("ext", [".mp4", ".webm", ".mov", ".mkv", ".MP4"])
    def test_direct_extensions(self, ext: str) -> None:
        url = f"https://cdn.example.com/videos/movie{ext}"
        ref = detect_source(url)
        assert ref.provider is Provider.DIRECT
        assert ref.identifier == url

    def test_m3u8_is_hls(self) -> None:
        ref = detect_source("https://cdn.example.com/live/master.m3u8")
        assert ref.provider is Provider.HLS

    def test_extension_ignores_query(self) -> None:
        ref = detect_source("https://cdn.example.com/a.mp4?token=1")
        assert ref.provider is Provider.DIRECT

    def test_extension_on_non_url(self) -> None:
        assert detect_source("movie.m3u8").provider is Provider.HLS


class TestEmbedded:
    def test_iframe_src(self) -> None:
        snippet = (
            f'<iframe src="https://drive.google.com/file/d/{_DRIVE_ID}/preview" '
            'width="640"></iframe>'
        )
        ref = detect_source(snippet)
        assert ref.provider is Provider.GOOGLE_DRIVE
        assert ref.identifier == _DRIVE_ID
        assert ref.original == f"https://drive.google.com/file/d/{_DRIVE_ID}/preview"

    def test_single_quoted_src(self) -> None:
        ref = detect_source("<video src='https://cdn.example.com/a.webm'></video>")
        assert ref.provider is Provider.DIRECT

    def test_bare_url_in_text(self) -> None:
        ref = detect_source("watch this https://voe.sx/e/xyz987 tonight")
        assert ref.provider is Provider.VOE

    def test_recursion_is_bounded(self) -> None:
        # The extracted value is itself an embed snippet; it is not unwrapped again.
        nested = "<iframe src=\"<iframe src='https://voe.sx/e/x'>\">"
        ref = detect_source(nested)
        assert ref.provider is Provider.UNKNOWN


class TestFallback:
    @pytest.mark.parametrize("value", ["", "   ", "just some words"])
    def test_unknown(self, value: str) -> None:
        ref = detect_source(value)
        assert ref.provider is Provider.UNKNOWN
        assert ref.identifier == value.strip()

    def test_non_http_scheme(self) -> None:
        assert detect_source("ftp://example.com/a").provider is Provider.UNKNOWN


class TestIdempotence:
    @pytest.mark.parametrize(
        "value",
        [
            f"https://drive.google.com/file/d/{_DRIVE_ID}/view",
            f'<iframe src="https://drive.google.com/file/d/{_DRIVE_ID}/preview">',
            "https://vidmoly.to/embed-abc123xyz.html",
            "https://voe.sx/e/xyz987",
            "https://cdn.example.com/a.m3u8",
            "see https://dood.watch/e/abc",
            "https://example.com/nothing",
            "plain text",
        ],
    )
    def test_reclassifying_original_is_stable(self, value: str) -> None:
        first = detect_source(value)
        assert detect_source(first.original) == first

    @pytest.mark.parametrize(
        "value",
        [
            f"https://drive.google.com/file/d/{_DRIVE_ID}/view",
            "https://vidmoly.to/embed-abc123xyz.html",
            "https://streamtape.com/v/abc",
        ],
    )
    def test_known_providers_have_identifier(self, value: str) -> None:
        ref = detect_source(value)
        assert ref.provider is not Provider.UNKNOWN
        assert ref.identifier
