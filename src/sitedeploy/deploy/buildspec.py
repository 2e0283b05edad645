"""Buildspec generation for the remote managed build.

The buildspec is passed to CodeBuild as an override, so the source tree does
not need to ship its own buildspec.yml.
"""

from jinja2 import Template

from sitedeploy.models.config import BuildRecipe

BUILDSPEC_TEMPLATE = """\
version: 0.2
{% if environment %}
env:
  variables:
{% for key, value in environment.items() %}
    {{ key | tojson }}: {{ value | tojson }}
{% endfor %}
{% endif %}
phases:
  install:
    commands:
      - {{ install_command | tojson }}
  build:
    commands:
      - {{ build_command | tojson }}
artifacts:
  files:
    - '**/*'
  base-directory: {{ output_dir | tojson }}
"""


def render_buildspec(recipe: BuildRecipe) -> str:
    """Render a CodeBuild buildspec for a build recipe.

    Values are emitted as JSON strings, which YAML accepts as double-quoted
    scalars, so commands containing ``:`` or ``#`` stay intact.

    Example:
        >>> spec = render_buildspec(BuildRecipe())
        >>> "npm run build" in spec
        True
    """
    template = Template(BUILDSPEC_TEMPLATE, trim_blocks=True, lstrip_blocks=True)
    return template.render(
        environment=recipe.environment,
        install_command=recipe.install_command,
        build_command=recipe.build_command,
        output_dir=recipe.output_dir,
    )
