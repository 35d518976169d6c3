from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

HTML_TEMPLATES_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(HTML_TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render(template_name: str, **context) -> str:
    """Render a page or fragment template to an HTML string."""
    return _env.get_template(template_name).render(**context)
