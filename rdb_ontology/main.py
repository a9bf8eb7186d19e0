"""The ``dump`` command: writes the TBox or ABox of a database to standard output."""

import logging
import sys
from typing import Optional

import click
from rdflib import Graph
from rdflib.plugin import PluginException, get as get_plugin
from rdflib.serializer import Serializer

from . import __version__
from .catalog_builder import CatalogBuilder, open_connection
from .config import BuildParameters, config_manager
from .errors import CatalogError
from .metadata_source import MetadataSource
from .ontology_generator import ABoxGenerator, LanguageLevel, TBoxGenerator
from .utils import setup_logging

logger = logging.getLogger(__name__)


def _configure_logging(verbosity: int) -> None:
    logging_config = config_manager.get_logging_config()
    log_level = logging_config.log_level
    if verbosity >= 3:
        log_level = "DEBUG"
    elif verbosity == 2 and log_level != "DEBUG":
        log_level = "INFO"
    setup_logging(log_level, logging_config.structured, stream=sys.stderr)
    # SQL statements are only wanted with SQLAlchemy's own echo setting
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def _check_syntax(ctx, param, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        get_plugin(value, Serializer)
    except PluginException:
        raise click.BadParameter(f"no RDF serializer named {value!r}")
    return value


def make_graph(params: BuildParameters, mode: str,
               language_level: LanguageLevel = LanguageLevel.OWL_LITE) -> Graph:
    """Build the catalog described by ``params`` and generate its TBox or ABox."""
    with open_connection(params) as connection:
        catalog = CatalogBuilder(params).build_from_source(MetadataSource(connection))
        if mode == "abox":
            return ABoxGenerator(catalog, connection).generate()
    return TBoxGenerator(catalog, language_level).generate()


@click.command(name="dump")
@click.argument("mode", type=click.Choice(["abox", "tbox"]))
@click.argument("url", required=False)
@click.option("-d", "--driver", help="DBAPI driver name, e.g. psycopg2.")
@click.option("-u", "--username", help="Database username.")
@click.option("-p", "--password", help="Database password.")
@click.option("-t", "--tbox", "tbox_base_uri", help="Base URI of the TBox.")
@click.option("-a", "--abox", "abox_base_uri", help="Base URI of the ABox.")
@click.option("-i", "--imported-tbox", "imported_tbox_uri", help="URI of the TBox the ABox imports.")
@click.option("-s", "--syntax", callback=_check_syntax, default=None,
              help="rdflib serialization format (default: turtle).")
@click.option("-v", "--verbosity", type=click.IntRange(min=0), default=None,
              help="Level of build diagnostics, 0 to 5.")
@click.option("--owl-full", is_flag=True, help="Generate OWL Full constructs in the TBox.")
@click.version_option(__version__, prog_name="dump")
def cli(mode: str, url: Optional[str], driver: Optional[str], username: Optional[str],
        password: Optional[str], tbox_base_uri: Optional[str], abox_base_uri: Optional[str],
        imported_tbox_uri: Optional[str], syntax: Optional[str], verbosity: Optional[int],
        owl_full: bool) -> None:
    """Dump the ABox or TBox of the database at URL (a SQLAlchemy URL)."""
    db_config = config_manager.get_database_config()
    url = url or db_config.url
    if not url:
        raise click.UsageError("URL is required (or set DATABASE_URL)")
    verbosity = verbosity if verbosity is not None else db_config.verbosity
    if syntax is None:
        syntax = _check_syntax(None, None, db_config.output_syntax)
    _configure_logging(verbosity)

    try:
        params = BuildParameters(
            url=url,
            username=username or db_config.username,
            password=password or db_config.password,
            driver=driver or db_config.driver,
            schema_pattern=db_config.schema_pattern,
            table_pattern=db_config.table_pattern,
            tbox_base_uri=tbox_base_uri or db_config.tbox_base_uri,
            abox_base_uri=abox_base_uri or db_config.abox_base_uri,
            imported_tbox_uri=imported_tbox_uri or db_config.imported_tbox_uri,
            verbosity=verbosity,
        )
    except ValueError as e:
        raise click.UsageError(str(e))

    language_level = LanguageLevel.OWL_FULL if owl_full else LanguageLevel.OWL_LITE
    try:
        graph = make_graph(params, mode, language_level)
    except CatalogError as e:
        logger.error(f"Failed to dump the {mode} of {params.public_url()}: {e}")
        sys.exit(1)

    click.echo(graph.serialize(format=syntax), nl=False)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
