"""
Tests for Action Reference Parser
"""

from pathlib import Path

from ciguard.pinning.parser import RefKind, is_full_sha, parse_references

SHA = "b4ffde65f46336ab88eb53be808477a3936bae11"
WF = Path("ci.yml")


class TestParseReferences:
    """Tests for parse_references."""

    def test_simple_reference(self):
        """owner/repo@ref is split into its parts."""
        content = "steps:\n  - uses: actions/checkout@v4\n"
        (ref,) = parse_references(content, WF).references

        assert ref.kind is RefKind.ACTION
        assert (ref.owner, ref.repo, ref.ref) == ("actions", "checkout", "v4")
        assert ref.line == 2
        assert content[ref.ref_start:ref.ref_end] == "v4"
        assert not ref.is_pinned

    def test_subpath_reference(self):
        """Actions in a subdirectory keep their path."""
        (ref,) = parse_references("- uses: github/codeql-action/init@v3\n", WF).references

        assert ref.repo == "codeql-action"
        assert ref.subpath == "init"
        assert ref.action == "github/codeql-action/init"

    def test_quoted_reference_with_comment(self):
        """Quotes and trailing comments are recorded."""
        content = '      - uses: "actions/setup-python@main"  # python\n'
        (ref,) = parse_references(content, WF).references

        assert ref.quote == '"'
        assert ref.comment == "# python"
        assert content[ref.value_end - 1] == '"'

    def test_pinned_excluded_by_default(self):
        """References already pinned to a SHA are not eligible."""
        content = f"- uses: actions/cache@{SHA} # v4\n"
        assert parse_references(content, WF).references == []

        (ref,) = parse_references(content, WF, include_pinned=True).references
        assert ref.is_pinned

    def test_local_references_skipped(self):
        """Local actions are not pinned."""
        content = "- uses: ./.github/actions/setup\n- uses: ../shared\n"
        outcome = parse_references(content, WF)

        assert outcome.references == []
        assert outcome.errors == []

    def test_docker_reference(self):
        """docker:// references need a digest."""
        content = "- uses: docker://alpine:3.19\n- uses: docker://alpine@sha256:abcdef\n"
        outcome = parse_references(content, WF, include_pinned=True)

        unpinned, pinned = outcome.references
        assert unpinned.kind is RefKind.DOCKER
        assert not unpinned.is_pinned
        assert not unpinned.resolvable
        assert pinned.is_pinned

    def test_expression_is_parse_error(self):
        """Expressions cannot be checked and are reported."""
        outcome = parse_references("- uses: org/action@${{ inputs.ref }}\n", WF)

        assert outcome.references == []
        assert len(outcome.errors) == 1
        assert outcome.errors[0].line == 1

    def test_missing_ref_is_parse_error(self):
        """A reference without @ref is malformed."""
        outcome = parse_references("- uses: actions/checkout\n", WF)

        assert outcome.references == []
        assert "missing @<ref>" in str(outcome.errors[0])

    def test_trailing_text_is_parse_error(self):
        """Unexpected text after the value is malformed."""
        outcome = parse_references("- uses: actions/checkout@v4 extra\n", WF)
        assert len(outcome.errors) == 1

    def test_commented_lines_ignored(self):
        """Commented-out references are not parsed."""
        assert parse_references("# - uses: actions/checkout@v4\n", WF).references == []

    def test_crlf_offsets(self):
        """Offsets stay exact with CRLF line endings."""
        content = "on: push\r\n- uses: actions/checkout@v4\r\n"
        (ref,) = parse_references(content, WF).references
        assert content[ref.ref_start:ref.value_end] == "v4"


class TestImages:
    """Tests for container and service images."""

    def test_images_reported_on_request(self):
        """container and services images are checked for digests."""
        content = (
            "jobs:\n"
            "  test:\n"
            "    container:\n"
            "      image: node:20\n"
            "    services:\n"
            "      redis:\n"
            "        image: redis@sha256:0123abcd\n"
            "    steps:\n"
            "      - run: echo hi\n"
            "  other:\n"
            "    container: python:3.12\n"
        )
        assert parse_references(content, WF).references == []

        refs = parse_references(content, WF, include_images=True).references
        assert [(r.line, r.value) for r in refs] == [(4, "node:20"), (11, "python:3.12")]
        assert all(r.kind is RefKind.IMAGE for r in refs)

    def test_image_outside_blocks_ignored(self):
        """An image key outside container/services is not a job image."""
        content = "with:\n  image: node:20\n"
        assert parse_references(content, WF, include_images=True).references == []


class TestIsFullSha:
    """Tests for is_full_sha."""

    def test_full_sha(self):
        """40 hex characters of either case."""
        assert is_full_sha(SHA)
        assert is_full_sha(SHA.upper())

    def test_not_full_sha(self):
        """Short SHAs and tags are mutable refs."""
        assert not is_full_sha(SHA[:7])
        assert not is_full_sha("v4")
        assert not is_full_sha(SHA + "0")
