"""Fixture generation: one static DDL script from a directory of table specs.

Walks the input directory recursively in sorted order, loads each spec,
and renders CREATE statements for the configured driver without touching a
live database.  Specs with no schema block for the driver are skipped.

Usage:
    from db_reconciler.fixtures import generate_fixtures

    path = generate_fixtures(Path("specs"), Path("build"), "postgres")
"""

import logging
from pathlib import Path

from db_reconciler.drivers import get_driver
from db_reconciler.errors import ReconcileError, UnsupportedDialectError
from db_reconciler.spec.loader import load_table_spec

logger = logging.getLogger(__name__)

BANNER = "/* Auto generated file. Do not edit by hand. This file was generated by db-reconciler. */"
FIXTURES_FILENAME = "fixtures.sql"


def iter_spec_files(input_dir: Path) -> list[Path]:
    """Regular files under *input_dir*, sorted, skipping hidden entries."""
    files = []
    for path in sorted(input_dir.rglob("*")):
        relative = path.relative_to(input_dir)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_file():
            files.append(path)
    return files


def fixture_statements(
    input_dir: Path,
    driver: str,
    include_seed_data: bool = False,
) -> list[str]:
    """Collect CREATE (and optionally seed) statements for every spec.

    Raises:
        UnknownDriverError: If *driver* is not registered.
        SpecParseError: If a file cannot be decoded as a table spec.
        InvalidSchemaError: If a spec's schema is structurally invalid.
    """
    renderer = get_driver(driver)
    statements: list[str] = []

    for path in iter_spec_files(input_dir):
        spec = load_table_spec(path)
        try:
            schema = spec.schema_for(driver)
        except UnsupportedDialectError:
            logger.debug(f"skipping {path}: no {driver} schema")
            continue

        if getattr(schema, "is_deleted", False):
            logger.debug(f"skipping {path}: table is marked deleted")
            continue

        try:
            statements.extend(renderer.create_table_statements(spec.name, schema))
            if include_seed_data and spec.seed_data and renderer.supports_seed_data:
                statements.extend(renderer.seed_data_statements(spec.name, spec.seed_data))
        except ReconcileError as e:
            raise e.with_context(table=spec.name, driver=driver, phase="fixtures")

    return statements


def render_fixtures(statements: list[str]) -> str:
    """Script text: banner, then statements separated by ``;``."""
    if not statements:
        return f"{BANNER}\n"
    body = ";\n".join(statements)
    return f"{BANNER}\n\n{body};\n"


def generate_fixtures(
    input_dir: Path,
    output_dir: Path,
    driver: str,
    include_seed_data: bool = False,
) -> Path:
    """Write ``fixtures.sql`` for *driver* into *output_dir*.

    The output directory is created if it does not exist.

    Returns:
        Path of the written file.
    """
    input_dir = Path(input_dir)
    output_dir = Path(output_dir)
    logger.info(f"generating fixtures from {input_dir} for {driver}")

    statements = fixture_statements(input_dir, driver, include_seed_data)

    output_dir.mkdir(mode=0o750, parents=True, exist_ok=True)
    output_path = output_dir / FIXTURES_FILENAME
    output_path.write_text(render_fixtures(statements))

    logger.info(f"wrote {len(statements)} statements to {output_path}")
    return output_path
