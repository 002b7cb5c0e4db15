"""
Tests for entry-point auto-wrapping with property-based testing.
"""

from hypothesis import given, strategies as st

from runtime_core.source_transforms import (
    has_entry_point, wrap_cpp, wrap_entry_point, wrap_java, wrap_rust,
)

RUST_STATEMENTS = ['let x = 1;', 'println!("{}", x);', 'let v = vec![1, 2, 3];', '']
CPP_STATEMENTS = ['int x = 1;', 'cout << x << endl;', 'std::vector<int> v{1, 2};', '']
JAVA_STATEMENTS = ['int x = 1;', 'System.out.println(x);', 'String s = "hi";', '']


class TestRust:
    """Test cases for Rust wrapping."""

    def test_bare_statements_wrapped(self):
        """Test bare Rust statements are wrapped in main."""
        assert wrap_rust('println!("hi");') == 'fn main() {\n    println!("hi");\n}\n'

    def test_existing_main_untouched(self):
        """Test Rust code with main is left alone."""
        code = 'fn helper() {}\n\nfn main () {\n    helper();\n}\n'
        assert wrap_rust(code) == code

    def test_blank_lines_trimmed(self):
        """Test blank lines around Rust code are trimmed."""
        assert wrap_rust('\n\nlet x = 1;\n\n') == 'fn main() {\n    let x = 1;\n}\n'


class TestCpp:
    """Test cases for C++ wrapping."""

    def test_includes_hoisted(self):
        """Test C++ includes are hoisted above main."""
        code = '#include <vector>\nstd::vector<int> v{1};\ncout << v.size();'
        assert wrap_cpp(code) == (
            '#include <vector>\n'
            'using namespace std;\n'
            '\n'
            'int main() {\n'
            '    std::vector<int> v{1};\n'
            '    cout << v.size();\n'
            '    return 0;\n'
            '}\n'
        )

    def test_default_headers_added(self):
        """Test default C++ headers are added."""
        assert wrap_cpp('cout << 1;') == (
            '#include <iostream>\n'
            'using namespace std;\n'
            '\n'
            'int main() {\n'
            '    cout << 1;\n'
            '    return 0;\n'
            '}\n'
        )

    def test_existing_main_untouched(self):
        """Test C++ code with main is left alone."""
        code = '#include <iostream>\nint main(int argc, char** argv) { return 0; }\n'
        assert wrap_cpp(code) == code


class TestJava:
    """Test cases for Java wrapping."""

    def test_imports_hoisted(self):
        """Test Java imports are hoisted above the class."""
        code = 'import java.util.List;\nSystem.out.println(1);'
        assert wrap_java(code) == (
            'import java.util.List;\n'
            '\n'
            'public class Main {\n'
            '    public static void main(String[] args) {\n'
            '        System.out.println(1);\n'
            '    }\n'
            '}\n'
        )

    def test_existing_main_untouched(self):
        """Test Java code with a main class is left alone."""
        code = 'public class App {\n    public static void main(String[] args) {}\n}\n'
        assert wrap_java(code) == code


class TestDispatch:
    """Test cases for language dispatch."""

    def test_other_languages_pass_through(self):
        """Test other languages pass through unchanged."""
        assert wrap_entry_point('python', "print('x')") == "print('x')"
        assert wrap_entry_point('swift', 'print("x")') == 'print("x")'

    def test_blank_source_untouched(self):
        """Test blank source is left untouched."""
        assert wrap_entry_point('rust', '   \n') == '   \n'

    def test_alias_dispatch(self):
        """Test transforms dispatch on language aliases."""
        assert wrap_entry_point('rs', 'let x = 1;') == wrap_rust('let x = 1;')
        assert wrap_entry_point('c++', 'int x = 1;') == wrap_cpp('int x = 1;')

    def test_has_entry_point(self):
        """Test entry point detection."""
        assert has_entry_point('rust', 'fn main() {}')
        assert not has_entry_point('java', 'System.out.println(1);')
        assert has_entry_point('python', 'anything')


@given(st.lists(st.sampled_from(RUST_STATEMENTS), min_size=1, max_size=8))
def test_rust_wrapping_is_idempotent(lines):
    """Property test: wrapped Rust source always has an entry point and is left alone after."""
    code = '\n'.join(lines)
    wrapped = wrap_entry_point('rust', code)
    if code.strip():
        assert has_entry_point('rust', wrapped)
    assert wrap_entry_point('rust', wrapped) == wrapped


@given(st.lists(st.sampled_from(CPP_STATEMENTS), min_size=1, max_size=8))
def test_cpp_wrapping_keeps_every_statement(lines):
    """Property test: every C++ statement survives wrapping, indented inside main."""
    code = '\n'.join(lines)
    wrapped = wrap_entry_point('cpp', code)
    for line in lines:
        if line:
            assert f'    {line}' in wrapped
    assert wrap_entry_point('cpp', wrapped) == wrapped


@given(st.lists(st.sampled_from(JAVA_STATEMENTS), min_size=1, max_size=8))
def test_java_wrapping_is_idempotent(lines):
    """Property test: wrapped Java source is recognised as having a main method."""
    code = '\n'.join(lines)
    wrapped = wrap_entry_point('java', code)
    if code.strip():
        assert 'public static void main(String[] args)' in wrapped
    assert wrap_entry_point('java', wrapped) == wrapped
