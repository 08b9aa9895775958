# DRY Scan - Index code elements and find near-duplicate code
# Copyright (C) 2025  Jonathan Louis
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Tests for signature matching, comment detection and brace balancing."""

import pytest

from dry_scan.errors import ValidationError
from dry_scan.extractor import (
    compile_patterns,
    extract_elements,
    extract_file,
    find_body_end,
    find_body_start,
    is_inside_comment,
)
from dry_scan.languages import get_patterns


SOURCE = """
// A function here
function hello() {
  console.log("hello");
}

/* Another function
   below */
function world() {
  const x = { a: 1 };
  if (x) {
    console.log("world");
  }
}

// function commentedOut() {
//   void 0;
// }

/*
function commentedOut2() {
  void 0;
}
*/

const arrow = () => {
  return "arrow";
};
"""

PATTERNS = [r"function\s+(\w+)", r"const\s+(\w+)\s*=\s*\(\)\s*=>"]


def names(elements):
    return [e.metadata.element_name for e in elements]


class TestExtractElements:

    def test_extracts_functions_and_arrows(self):
        elements = extract_elements(SOURCE, PATTERNS, file_path="test.ts")
        assert names(elements) == ["hello", "world", "arrow"]

    def test_skips_commented_out_signatures(self):
        found = names(extract_elements(SOURCE, PATTERNS))
        assert "commentedOut" not in found
        assert "commentedOut2" not in found
        # "function\n   below" inside the block comment must not match either
        assert "below" not in found

    def test_nested_braces_balance(self):
        elements = extract_elements(SOURCE, PATTERNS)
        world = next(e for e in elements if e.metadata.element_name == "world")

        assert world.element_string.startswith("function world()")
        assert "const x = { a: 1 };" in world.element_string
        assert 'console.log("world");' in world.element_string
        assert world.element_string.endswith("  }\n}")

    def test_line_numbers(self):
        elements = {e.metadata.element_name: e for e in extract_elements(SOURCE, PATTERNS)}
        assert elements["hello"].metadata.line_number == 3
        assert elements["world"].metadata.line_number == 9
        assert elements["arrow"].metadata.line_number == 26

    def test_metadata_fields_are_recorded(self):
        elements = extract_elements(
            SOURCE,
            PATTERNS,
            file_path="src/test.ts",
            file_hash="abc",
            commit_hash="deadbeef",
            base_path="/repo",
        )
        meta = elements[0].metadata
        assert meta.file_path == "src/test.ts"
        assert meta.file_hash == "abc"
        assert meta.commit_hash == "deadbeef"
        assert meta.base_path == "/repo"
        assert meta.cache_key == ("abc", "hello", 3)

    def test_deeply_nested_body_ends_at_matching_brace(self):
        source = "function deep() { a { b { c { d } } } }\nfunction next() { }"
        elements = extract_elements(source, [r"function\s+(\w+)"])
        assert elements[0].element_string == "function deep() { a { b { c { d } } } }"
        assert elements[1].element_string == "function next() { }"

    def test_declaration_without_body_is_skipped(self):
        source = "function decl();\nfunction real() { return 1; }"
        assert names(extract_elements(source, [r"function\s+(\w+)"])) == ["real"]

    def test_closing_brace_before_body_is_skipped(self):
        source = "{ call(function inner) }\n"
        assert extract_elements(source, [r"function\s+(\w+)"]) == []

    def test_unterminated_body_is_skipped(self):
        source = "function broken() {\n  if (x) {\n"
        assert extract_elements(source, [r"function\s+(\w+)"]) == []

    def test_name_falls_back_to_trimmed_signature(self):
        source = "  handler = function () { }"
        elements = extract_elements(source, [r"function\s*\("])
        assert names(elements) == ["function ("]

    def test_empty_capture_group_falls_back_to_signature(self):
        source = "function () { }"
        elements = extract_elements(source, [r"function\s+(\w*)\("])
        assert names(elements) == ["function ("]

    def test_same_position_is_emitted_once(self):
        source = "function twice() { }"
        elements = extract_elements(
            source,
            [r"function\s+(\w+)", r"function\s+\w+\s*\("],
        )
        assert len(elements) == 1
        assert elements[0].metadata.element_name == "twice"

    def test_exclude_patterns_drop_matching_signatures(self):
        source = "function keepMe() { }\nfunction _private() { }"
        elements = extract_elements(
            source,
            [r"function\s+(\w+)"],
            exclude_patterns=[r"function\s+_"],
        )
        assert names(elements) == ["keepMe"]

    def test_excluded_match_does_not_claim_position(self):
        source = "function _shared() { }"
        elements = extract_elements(
            source,
            [r"function\s+(\w+)", r"function\s+(_\w+)\s*\("],
            exclude_patterns=[r"^function\s+_\w+$"],
        )
        assert names(elements) == ["_shared"]

    def test_signature_after_line_comment_is_skipped(self):
        source = "call(); // function ghost() { }\nfunction real() { }"
        assert names(extract_elements(source, [r"function\s+(\w+)"])) == ["real"]

    def test_signature_after_closed_block_comment_is_kept(self):
        source = "/* note */ function real() { }"
        assert names(extract_elements(source, [r"function\s+(\w+)"])) == ["real"]

    def test_builtin_java_patterns(self):
        source = (
            "public class Greeter {\n"
            "    public String greet(String name) {\n"
            "        if (name == null) { return \"\"; }\n"
            "        return \"hi \" + name;\n"
            "    }\n"
            "}\n"
        )
        java = get_patterns("java")
        elements = extract_elements(source, java.include, java.exclude)
        assert "greet" in names(elements)
        assert "if" not in names(elements)

    def test_extract_file_reads_from_disk(self, tmp_path):
        path = tmp_path / "test.ts"
        path.write_text(SOURCE, encoding="utf-8")

        elements = extract_file(path, PATTERNS, display_path="test.ts")

        assert names(elements) == ["hello", "world", "arrow"]
        assert elements[0].metadata.file_path == "test.ts"


class TestHelpers:

    def test_compile_patterns_rejects_invalid_regex(self):
        with pytest.raises(ValidationError):
            compile_patterns(["function (("])

    def test_is_inside_comment(self):
        content = "a /* b */ c // d\n/* open e"
        assert is_inside_comment(content, content.index("b"))
        assert not is_inside_comment(content, content.index("c"))
        assert is_inside_comment(content, content.index("d"))
        assert is_inside_comment(content, content.index("e"))

    def test_find_body_start_stops_at_semicolon(self):
        assert find_body_start("f(); { }", 0) == -1
        assert find_body_start("f() { }", 0) == 4
        assert find_body_start("f()", 0) == -1

    def test_find_body_start_skips_escaped_brace(self):
        content = "f(\\{) { }"
        assert find_body_start(content, 0) == content.index(" {") + 1

    def test_find_body_end(self):
        content = "{ { } }tail"
        assert find_body_end(content, 0) == len("{ { } }")
        assert find_body_end("{ {", 0) == -1
