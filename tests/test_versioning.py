"""Tests for cargo requirement translation."""

import pytest

from resolver_crosscheck.versioning import ANY, VersionReq, parse_requirement, parse_version


def _matches(req: str, version: str) -> bool:
    return parse_requirement(req).matches(parse_version(version))


def test_caret_is_the_default_operator() -> None:
    assert _matches("1.2", "1.2.0")
    assert _matches("^1.2", "1.9.9")
    assert not _matches("^1.2", "2.0.0")
    assert not _matches("1.2", "1.1.9")


def test_caret_on_zero_major_versions() -> None:
    assert _matches("^0.2.3", "0.2.9")
    assert not _matches("^0.2.3", "0.3.0")
    assert _matches("^0.0.3", "0.0.3")
    assert not _matches("^0.0.3", "0.0.4")
    assert _matches("^0.2", "0.2.7")
    assert not _matches("^0.2", "0.3.0")


def test_tilde_exact_and_ranges() -> None:
    assert _matches("~1.2.3", "1.2.7")
    assert not _matches("~1.2.3", "1.3.0")
    assert _matches("~1", "1.9.0")
    assert _matches("=1.0.0", "1.0.0")
    assert not _matches("=1.0.0", "1.0.1")
    assert _matches(">=1, <2", "1.5.0")
    assert not _matches(">=1, <2", "2.0.0")
    assert _matches(">1.2", "1.3.0")
    assert not _matches(">1.2", "1.2.9")
    assert _matches("<=1.2", "1.2.9")
    assert _matches("1.*", "1.7.0")
    assert not _matches("1.*", "2.0.0")
    assert _matches("1.2.*", "1.2.5")
    assert not _matches("1.2.*", "1.3.0")


def test_wildcard_matches_releases_only() -> None:
    assert ANY.matches(parse_version("3.1.4"))
    assert not ANY.matches(parse_version("1.0.0-alpha.1"))


def test_prerelease_requirement_allows_prereleases() -> None:
    assert _matches("^1.0.0-beta.1", "1.0.0-beta.2")
    assert _matches("^1.0.0-beta.1", "1.0.0")
    assert not _matches("^1.0.0-beta.1", "1.0.0-alpha")
    assert not _matches("^1.0.0", "1.1.0-rc.1")


def test_prerelease_only_matches_the_same_release_triple() -> None:
    assert not _matches("^1.0.0-alpha", "1.2.0-beta.1")
    assert _matches("^1.0.0-alpha", "1.2.0")
    assert _matches(">=1.0.0-alpha, <2", "1.0.0-alpha.1")
    assert not _matches(">=1.0.0-alpha, <2", "1.5.0-rc.1")


def test_exact_pin() -> None:
    pin = VersionReq.exact(parse_version("2.0.0-rc.1"))
    assert pin.matches(parse_version("2.0.0-rc.1"))
    assert not pin.matches(parse_version("2.0.0"))
    assert not pin.matches(parse_version("2.0.0-rc.1.0"))
    assert str(pin) == "=2.0.0-rc.1"


@pytest.mark.parametrize(
    "text",
    ["1.0.0-alpha.beta", "1.0.0-x.7.z.92", "0.1.0-reserved", "1.0.0-beta.1.2", "1.0.0+build.5"],
)
def test_semver_versions_keep_their_text(text: str) -> None:
    assert str(parse_version(text)) == text


def test_semver_precedence() -> None:
    ordered = [
        "1.0.0-alpha",
        "1.0.0-alpha.0",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0-beta.2",
        "1.0.0-beta.11",
        "1.0.0-rc.1",
        "1.0.0",
    ]
    versions = [parse_version(v) for v in ordered]
    assert sorted(reversed(versions)) == versions
    assert len(set(versions)) == len(ordered)


def test_equal_text_shares_one_requirement() -> None:
    assert parse_requirement("^1.0") is parse_requirement("^1.0")
    assert parse_version("1.0.0") is parse_version("1.0.0")


@pytest.mark.parametrize("text", ["", "abc", ">=", "^1.0-beta", "1.2.3.4.x", "01.2"])
def test_invalid_requirements_raise(text: str) -> None:
    with pytest.raises(ValueError):
        parse_requirement(text)


@pytest.mark.parametrize("text", ["1.0", "1.0.0a1", "1.0.0-", "01.0.0"])
def test_invalid_versions_raise(text: str) -> None:
    with pytest.raises(ValueError):
        parse_version(text)
