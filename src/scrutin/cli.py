"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/cli.py`.
Interface en ligne de commande : agrégation, classement, liste des
entités publiables, publication et annulation.

Composants détectés :
  - app
  - aggregate
  - entities
  - stats
  - status
  - history
  - publish
  - cancel

======================== ENGLISH ========================
File: `src/scrutin/cli.py`.
Command line interface: aggregation, ranking, publishable entity list,
publication and cancellation.

Detected components:
  - app
  - aggregate
  - entities
  - stats
  - status
  - history
  - publish
  - cancel
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from scrutin.config import ScrutinSettings, load_config
from scrutin.core.aggregation import (
    build_hierarchy,
    entity_nodes,
    iter_level,
)
from scrutin.core.errors import DataShapeError
from scrutin.core.models import Actor, EntityType, LeafUnit, Role
from scrutin.core.normalize import normalize_rows
from scrutin.core.publication import PublicationService
from scrutin.core.ranking import resolve, result_state
from scrutin.core.storage import SQLitePublicationStore
from scrutin.core.views import EntityView, StatusFilter, ViewQuery, filter_entities, publication_stats
from scrutin.logging import bind_context, setup_logging
from scrutin.utils.config_loader import HierarchyConfig, load_hierarchy_config

app = typer.Typer(help="Scrutin Engine CLI")


@app.callback()
def main() -> None:
    """Interface en ligne de commande de Scrutin.

    English: Scrutin command line interface.
    """


def _settings() -> ScrutinSettings:
    try:
        return load_config()
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc


def _hierarchy(settings: Optional[ScrutinSettings]) -> HierarchyConfig:
    if settings is None or settings.HIERARCHY_CONFIG is None:
        return HierarchyConfig()
    try:
        return load_hierarchy_config(settings.HIERARCHY_CONFIG)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc


def _load_leaves(rows_path: Path) -> List[LeafUnit]:
    try:
        rows = json.loads(rows_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        typer.echo(f"cannot read rows file {rows_path}: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    if not isinstance(rows, list):
        typer.echo(f"{rows_path} must contain a JSON list of rows", err=True)
        raise typer.Exit(code=2)
    try:
        normalized = normalize_rows(rows)
    except DataShapeError as exc:
        typer.echo(f"invalid row: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    for warning in normalized.warnings:
        typer.echo(f"warning: {warning}", err=True)
    return normalized.units


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _entity_views(
    service: PublicationService,
    leaves: List[LeafUnit],
    entity_type: EntityType,
    hierarchy: HierarchyConfig,
) -> List[EntityView]:
    nodes = entity_nodes(leaves, entity_type, expected_units=hierarchy.expected_units)
    return [EntityView(node=node, record=service.ensure_record(node.id, entity_type)) for node in nodes]


@app.command()
def aggregate(
    rows: Path = typer.Argument(..., help="Fichier JSON des lignes par bureau de vote."),
    hierarchy: str = typer.Option("electoral", help="electoral | geographic"),
    level: Optional[str] = typer.Option(None, help="Niveau à classer (ex. circonscription)."),
) -> None:
    """Agrège les lignes et affiche totaux et classements.

    English: Aggregate rows and print totals and rankings.
    """
    config = _hierarchy(_settings())
    leaves = _load_leaves(rows)
    if hierarchy == "electoral":
        root = build_hierarchy(leaves, config.electoral_levels, expected_units=config.expected_units)
    elif hierarchy == "geographic":
        root = build_hierarchy(leaves, config.geographic_levels, expected_units=config.expected_units)
    else:
        raise typer.BadParameter("hierarchy must be 'electoral' or 'geographic'")

    nodes = list(iter_level(root, level)) if level else [root]
    payload: List[Dict[str, Any]] = []
    for node in nodes:
        ranking = resolve(node)
        payload.append(
            {
                "node": node.to_dict(),
                "state": result_state(ranking).value,
                "ranking": [asdict(result) for result in ranking],
            }
        )
    _echo_json(payload)


@app.command()
def entities(
    rows: Path = typer.Argument(..., help="Fichier JSON des lignes par bureau de vote."),
    entity_type: EntityType = typer.Option(EntityType.CIRCONSCRIPTION, "--entity-type"),
    status: StatusFilter = typer.Option(StatusFilter.ALL, "--status"),
    search: str = typer.Option("", "--search"),
    page: int = typer.Option(1, "--page"),
) -> None:
    """Liste filtrée et paginée des entités publiables.

    English: Filtered, paginated list of publishable entities.
    """
    settings = _settings()
    store = SQLitePublicationStore(str(settings.db_path))
    try:
        service = PublicationService(store)
        views = _entity_views(service, _load_leaves(rows), entity_type, _hierarchy(settings))
        query = ViewQuery(status=status, search=search, page=page, page_size=settings.PAGE_SIZE)
        result = filter_entities(views, query)
    finally:
        store.close()
    _echo_json(
        {
            "total": result.total,
            "page": result.page,
            "page_size": result.page_size,
            "total_pages": result.total_pages,
            "entities": [
                {
                    "code": view.code,
                    "label": view.label,
                    "status": view.record.status.value,
                    "ready": view.is_ready,
                    "units": view.node.child_unit_count,
                    "imported_units": view.node.imported_child_unit_count,
                    "cels": [child.id for child in view.node.children],
                }
                for view in result.items
            ],
        }
    )


@app.command()
def stats(
    rows: Path = typer.Argument(..., help="Fichier JSON des lignes par bureau de vote."),
    entity_type: EntityType = typer.Option(EntityType.CIRCONSCRIPTION, "--entity-type"),
) -> None:
    """Compteurs du tableau de bord des publications.

    English: Publications dashboard counters.
    """
    settings = _settings()
    store = SQLitePublicationStore(str(settings.db_path))
    try:
        service = PublicationService(store)
        views = _entity_views(service, _load_leaves(rows), entity_type, _hierarchy(settings))
    finally:
        store.close()
    _echo_json(asdict(publication_stats(views)))


@app.command()
def status(
    entity: str = typer.Argument(...),
    entity_type: EntityType = typer.Option(EntityType.CIRCONSCRIPTION, "--entity-type"),
) -> None:
    """Statut de publication d'une entité. / Publication status of an entity."""
    settings = _settings()
    store = SQLitePublicationStore(str(settings.db_path))
    try:
        current = PublicationService(store).get_publication_status(entity, entity_type)
    finally:
        store.close()
    if current is None:
        typer.echo(f"unknown {entity_type.value} {entity}", err=True)
        raise typer.Exit(code=1)
    typer.echo(current.value)


@app.command()
def history(
    entity: str = typer.Argument(...),
    entity_type: EntityType = typer.Option(EntityType.CIRCONSCRIPTION, "--entity-type"),
) -> None:
    """Historique d'audit d'une entité. / Audit trail of an entity."""
    settings = _settings()
    store = SQLitePublicationStore(str(settings.db_path))
    try:
        entries = PublicationService(store).get_history(entity, entity_type)
    finally:
        store.close()
    _echo_json([asdict(entry) for entry in entries])


@app.command()
def publish(
    entity: str = typer.Argument(...),
    rows: Path = typer.Option(..., "--rows", help="Fichier JSON des lignes par bureau de vote."),
    actor: str = typer.Option(..., "--actor"),
    role: Role = typer.Option(Role.USER, "--role"),
    entity_type: EntityType = typer.Option(EntityType.CIRCONSCRIPTION, "--entity-type"),
) -> None:
    """Publie les résultats d'une entité. / Publish an entity's results."""
    settings = _settings()
    logger = bind_context(setup_logging(settings.LOG_LEVEL, settings.STORAGE_PATH), entity, actor, "PUBLISH")
    leaves = _load_leaves(rows)
    nodes = entity_nodes(leaves, entity_type, expected_units=_hierarchy(settings).expected_units)
    node = next((candidate for candidate in nodes if candidate.id == entity), None)
    if node is None:
        typer.echo(f"no results for {entity_type.value} {entity}", err=True)
        raise typer.Exit(code=1)

    store = SQLitePublicationStore(str(settings.db_path))
    try:
        service = PublicationService(store)
        service.ensure_record(entity, entity_type)
        outcome = service.publish(entity, node, Actor(user_id=actor, role=role), entity_type=entity_type)
    finally:
        store.close()
    if not outcome.success:
        logger.warning("publish_rejected", code=outcome.code.value, reason=outcome.reason)
        typer.echo(f"{outcome.code.value}: {outcome.reason}", err=True)
        raise typer.Exit(code=1)
    logger.info("publish_succeeded")
    typer.echo(outcome.record.status.value if outcome.record else "PUBLISHED")


@app.command()
def cancel(
    entity: str = typer.Argument(...),
    actor: str = typer.Option(..., "--actor"),
    role: Role = typer.Option(Role.USER, "--role"),
    entity_type: EntityType = typer.Option(EntityType.CIRCONSCRIPTION, "--entity-type"),
) -> None:
    """Annule la publication d'une entité. / Cancel an entity's publication."""
    settings = _settings()
    logger = bind_context(setup_logging(settings.LOG_LEVEL, settings.STORAGE_PATH), entity, actor, "CANCEL")
    store = SQLitePublicationStore(str(settings.db_path))
    try:
        outcome = PublicationService(store).cancel(entity, Actor(user_id=actor, role=role), entity_type=entity_type)
    finally:
        store.close()
    if not outcome.success:
        logger.warning("cancel_rejected", code=outcome.code.value, reason=outcome.reason)
        typer.echo(f"{outcome.code.value}: {outcome.reason}", err=True)
        raise typer.Exit(code=1)
    logger.info("cancel_succeeded")
    typer.echo(outcome.record.status.value if outcome.record else "CANCELLED")


if __name__ == "__main__":
    app()
