from pathlib import Path

import jinja2
import pytest

from sablier.theme import Instance, Options, ThemeNotFoundError, Themes, parse_templates

STARTING = Instance(
    name="starting-instance",
    status="instance is starting...",
    current_replicas=0,
    desired_replicas=1,
)
STARTED = Instance(
    name="started-instance",
    status="instance is started.",
    current_replicas=1,
    desired_replicas=1,
)
ERRORED = Instance(
    name="error-instance",
    error=RuntimeError("instance does not exist"),
    current_replicas=0,
    desired_replicas=1,
)

CUSTOM_THEME = "\n".join(
    [
        '<html lang="en">',
        "\t<head>",
        '\t\t<meta http-equiv="refresh" content="{{ refresh_frequency }}" />',
        "\t</head>",
        "\t<body>",
        "\t\tStarting {{ display_name }}",
        "\t\tYour instances will stop after {{ session_duration }} of inactivity",
        "\t\t<table>",
        "\t\t\t{%- for instance in instance_states %}",
        "\t\t\t<tr>",
        "\t\t\t\t<td>{{ instance.name }}</td>",
        "\t\t\t\t{%- if instance.error %}",
        "\t\t\t\t<td>{{ instance.error }}</td>",
        "\t\t\t\t{%- else %}",
        "\t\t\t\t<td>{{ instance.status }} ({{ instance.current_replicas }}/{{ instance.desired_replicas }})</td>",
        "\t\t\t\t{%- endif %}",
        "\t\t\t</tr>",
        "\t\t\t{%- endfor %}",
        "\t\t</table>",
        "\t\tSablier version {{ version }}",
        "\t</body>",
        "</html>",
    ]
) + "\n"

EXPECTED = "\n".join(
    [
        '<html lang="en">',
        "\t<head>",
        '\t\t<meta http-equiv="refresh" content="5" />',
        "\t</head>",
        "\t<body>",
        "\t\tStarting Test",
        "\t\tYour instances will stop after 10 minutes of inactivity",
        "\t\t<table>",
        "\t\t\t<tr>",
        "\t\t\t\t<td>starting-instance</td>",
        "\t\t\t\t<td>instance is starting... (0/1)</td>",
        "\t\t\t</tr>",
        "\t\t\t<tr>",
        "\t\t\t\t<td>started-instance</td>",
        "\t\t\t\t<td>instance is started. (1/1)</td>",
        "\t\t\t</tr>",
        "\t\t\t<tr>",
        "\t\t\t\t<td>error-instance</td>",
        "\t\t\t\t<td>instance does not exist</td>",
        "\t\t\t</tr>",
        "\t\t</table>",
        "\t\tSablier version 1.0.0",
        "\t</body>",
        "</html>",
    ]
)


@pytest.fixture
def custom_dir(tmp_path: Path) -> Path:
    inner = tmp_path / "inner"
    inner.mkdir()
    (inner / "custom-theme.html").write_text(CUSTOM_THEME, encoding="utf-8")
    return tmp_path


def options(show_details: bool = True, display_name: str = "Test") -> Options:
    return Options(
        display_name=display_name,
        show_details=show_details,
        instance_states=[STARTING, STARTED, ERRORED],
        session_duration=600,
        refresh_frequency=5,
    )


def test_list_includes_nested_templates(tmp_path: Path) -> None:
    (tmp_path / "theme1.html").write_text("", encoding="utf-8")
    (tmp_path / "inner").mkdir()
    (tmp_path / "inner" / "theme2.html").write_text("", encoding="utf-8")

    themes = Themes.from_directory(tmp_path)

    assert sorted(themes.list()) == ["theme1", "theme2"]


def test_list_skips_non_html_suffix() -> None:
    themes = Themes({"a.html": "", "b.html.bak": "", "c.txt": ""})
    assert themes.list() == ["a"]


def test_parse_templates_keys_by_file_name(tmp_path: Path) -> None:
    (tmp_path / "one.html").write_text("first", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "two.html").write_text("second", encoding="utf-8")

    assert parse_templates(tmp_path) == {"one.html": "first", "two.html": "second"}


def test_parse_templates_later_file_wins(tmp_path: Path) -> None:
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    (tmp_path / "a" / "same.html").write_text("from a", encoding="utf-8")
    (tmp_path / "b" / "same.html").write_text("from b", encoding="utf-8")

    assert parse_templates(tmp_path) == {"same.html": "from b"}


def test_parse_templates_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        parse_templates(tmp_path / "missing")


def test_render_example_output(custom_dir: Path) -> None:
    themes = Themes.from_directory(custom_dir)
    rendered = themes.render("custom-theme", options(), version="1.0.0")
    assert rendered.strip() == EXPECTED.strip()


def test_render_custom_theme_succeeds(custom_dir: Path) -> None:
    themes = Themes.from_directory(custom_dir)
    rendered = themes.render("custom-theme", options(show_details=False), version="1.0.0")
    assert "Starting Test" in rendered


def test_render_without_details_hides_instances(custom_dir: Path) -> None:
    themes = Themes.from_directory(custom_dir)
    rendered = themes.render("custom-theme", options(show_details=False), version="1.0.0")
    assert "<tr>" not in rendered
    assert "starting-instance" not in rendered


def test_render_non_existent_theme(custom_dir: Path) -> None:
    themes = Themes.from_directory(custom_dir)
    with pytest.raises(ThemeNotFoundError, match="theme non-existent does not exist"):
        themes.render("non-existent", options())


def test_render_escapes_html(custom_dir: Path) -> None:
    themes = Themes.from_directory(custom_dir)
    rendered = themes.render("custom-theme", options(display_name="<b>x</b>"))
    assert "Starting &lt;b&gt;x&lt;/b&gt;" in rendered


def test_invalid_template_fails_at_load() -> None:
    with pytest.raises(jinja2.TemplateSyntaxError):
        Themes({"broken.html": "{% for x in %}"})