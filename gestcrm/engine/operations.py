"""
Operations Engine - projects, collaborators and token (gettone) allocation.

A collaborator has a pool of gettoni_disponibili. Assigning them to a project
earmarks gettoni_assegnati; work logged against the assignment consumes
gettoni_utilizzati. The store keeps the raw numbers, the allocation summary is
computed here.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from gestcrm.bus.events import (
    bus,
    EVENT_PROJECT_CREATED, EVENT_PROJECT_UPDATED, EVENT_PROJECT_DELETED,
    EVENT_COLLABORATOR_CREATED, EVENT_COLLABORATOR_UPDATED, EVENT_COLLABORATOR_DELETED,
    EVENT_COLLABORATOR_ASSIGNED, EVENT_COLLABORATOR_UNASSIGNED, EVENT_TOKENS_USED,
)
from gestcrm.db.connection import get_db_cursor, fallback_on_db_error
from gestcrm.engine.crm import _insert_sql, _set_clause, _validate_columns, known_fields
from gestcrm.models import (
    Collaborator, Project, ProjectAssignment, TokenAllocation, PROJECT_ACTIVE_STATES,
)

logger = logging.getLogger(__name__)

_PROJECT_INSERT = (
    'nome_progetto', 'descrizione', 'client_id', 'stato', 'priorita', 'data_inizio',
    'data_fine_prevista', 'data_fine_effettiva', 'budget_stimato', 'budget_utilizzato',
    'note', 'user_id',
)
_COLLABORATOR_INSERT = (
    'nome', 'cognome', 'email', 'telefono', 'ruolo_principale', 'tipo_compenso',
    'compenso_per_gettone', 'compenso_fisso', 'gettoni_disponibili', 'user_id',
)
_ASSIGNMENT_INSERT = (
    'project_id', 'collaborator_id', 'ruolo_progetto', 'gettoni_assegnati',
    'gettoni_utilizzati', 'data_assegnazione', 'note',
)

_PROJECT_COLUMNS = set(_PROJECT_INSERT) - {'user_id'}
_COLLABORATOR_COLUMNS = set(_COLLABORATOR_INSERT) - {'user_id'}
_ASSIGNMENT_COLUMNS = {'ruolo_progetto', 'gettoni_assegnati', 'gettoni_utilizzati', 'note'}

# Highest priority first
_PRIORITY_ORDER = """
    CASE priorita
        WHEN 'critica' THEN 0
        WHEN 'alta' THEN 1
        WHEN 'media' THEN 2
        ELSE 3
    END
"""


def _insert(table: str, columns, entity) -> str:
    params = {c: getattr(entity, c) for c in columns}
    with get_db_cursor() as cur:
        cur.execute(_insert_sql(table, columns), params)
        return cur.fetchone()['id']


def _update(table: str, row_id: str, updates: Dict[str, Any], allowed: set, entity: str, touch: bool = True) -> bool:
    if not updates:
        return False

    _validate_columns(updates, allowed, entity)

    stamp = ", updated_at = NOW()" if touch else ""
    params = dict(updates, row_id=row_id)
    with get_db_cursor() as cur:
        cur.execute(f"""
            UPDATE {table}
            SET {_set_clause(updates)}{stamp}
            WHERE id = %(row_id)s
        """, params)
        return cur.rowcount > 0


def _delete(table: str, row_id: str) -> bool:
    with get_db_cursor() as cur:
        cur.execute(f"DELETE FROM {table} WHERE id = %s", (row_id,))
        return cur.rowcount > 0


# =============================================================================
# PROJECTS
# =============================================================================

def create_project(project: Project) -> str:
    project_id = _insert('projects', _PROJECT_INSERT, project)
    logger.info(f"Created project {project_id}: {project.nome_progetto}")
    bus.emit(EVENT_PROJECT_CREATED, {'project_id': project_id, 'project': project})
    return project_id


@fallback_on_db_error([])
def fetch_projects() -> List[Project]:
    """All projects, newest first."""
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM projects ORDER BY created_at DESC")
        rows = cur.fetchall()
        logger.debug(f"fetch_projects: {len(rows)} projects")
        return [Project(**known_fields(Project, r)) for r in rows]


@fallback_on_db_error([])
def fetch_active_projects() -> List[Project]:
    """Projects being planned or in progress, by priority then start date."""
    with get_db_cursor() as cur:
        cur.execute(f"""
            SELECT * FROM projects
            WHERE stato = ANY(%s)
            ORDER BY {_PRIORITY_ORDER}, data_inizio ASC NULLS LAST
        """, (list(PROJECT_ACTIVE_STATES),))
        rows = cur.fetchall()
        logger.debug(f"fetch_active_projects: {len(rows)} projects")
        return [Project(**known_fields(Project, r)) for r in rows]


def update_project(project_id: str, updates: Dict[str, Any]) -> bool:
    if _update('projects', project_id, updates, _PROJECT_COLUMNS, 'project'):
        logger.info(f"Updated project {project_id}: {list(updates.keys())}")
        bus.emit(EVENT_PROJECT_UPDATED, {'project_id': project_id, 'updates': updates})
        return True
    return False


def delete_project(project_id: str) -> bool:
    if _delete('projects', project_id):
        logger.info(f"Deleted project {project_id}")
        bus.emit(EVENT_PROJECT_DELETED, {'project_id': project_id})
        return True
    return False


# =============================================================================
# COLLABORATORS
# =============================================================================

def create_collaborator(collaborator: Collaborator) -> str:
    if collaborator.gettoni_disponibili < 0:
        raise ValueError("gettoni_disponibili cannot be negative")
    collaborator_id = _insert('collaborators', _COLLABORATOR_INSERT, collaborator)
    logger.info(f"Created collaborator {collaborator_id}: {collaborator.nome} {collaborator.cognome}")
    bus.emit(EVENT_COLLABORATOR_CREATED, {'collaborator_id': collaborator_id, 'collaborator': collaborator})
    return collaborator_id


@fallback_on_db_error([])
def fetch_collaborators() -> List[Collaborator]:
    """All collaborators by surname."""
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM collaborators ORDER BY cognome ASC")
        rows = cur.fetchall()
        return [Collaborator(**known_fields(Collaborator, r)) for r in rows]


@fallback_on_db_error(None)
def get_collaborator(collaborator_id: str) -> Optional[Collaborator]:
    with get_db_cursor() as cur:
        cur.execute("SELECT * FROM collaborators WHERE id = %s", (collaborator_id,))
        row = cur.fetchone()
        return Collaborator(**known_fields(Collaborator, row)) if row else None


def update_collaborator(collaborator_id: str, updates: Dict[str, Any]) -> bool:
    if _update('collaborators', collaborator_id, updates, _COLLABORATOR_COLUMNS, 'collaborator'):
        logger.info(f"Updated collaborator {collaborator_id}: {list(updates.keys())}")
        bus.emit(EVENT_COLLABORATOR_UPDATED, {'collaborator_id': collaborator_id, 'updates': updates})
        return True
    return False


def update_tokens(collaborator_id: str, new_token_count: int) -> bool:
    """Set a collaborator's token pool."""
    if new_token_count < 0:
        raise ValueError("Token count cannot be negative")
    return update_collaborator(collaborator_id, {'gettoni_disponibili': new_token_count})


def delete_collaborator(collaborator_id: str) -> bool:
    if _delete('collaborators', collaborator_id):
        logger.info(f"Deleted collaborator {collaborator_id}")
        bus.emit(EVENT_COLLABORATOR_DELETED, {'collaborator_id': collaborator_id})
        return True
    return False


# =============================================================================
# PROJECT ASSIGNMENTS
# =============================================================================

def assign_to_project(assignment: ProjectAssignment) -> str:
    if assignment.gettoni_assegnati < 0:
        raise ValueError("gettoni_assegnati cannot be negative")
    assignment_id = _insert('project_collaborators', _ASSIGNMENT_INSERT, assignment)
    logger.info(
        f"Assigned collaborator {assignment.collaborator_id} to project {assignment.project_id} "
        f"({assignment.gettoni_assegnati} gettoni)"
    )
    bus.emit(EVENT_COLLABORATOR_ASSIGNED, {'assignment_id': assignment_id, 'assignment': assignment})
    return assignment_id


@fallback_on_db_error([])
def fetch_project_collaborators(project_id: str) -> List[ProjectAssignment]:
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM project_collaborators
            WHERE project_id = %s
            ORDER BY data_assegnazione ASC
        """, (project_id,))
        return [ProjectAssignment(**known_fields(ProjectAssignment, r)) for r in cur.fetchall()]


@fallback_on_db_error([])
def fetch_collaborator_assignments(collaborator_id: str) -> List[ProjectAssignment]:
    with get_db_cursor() as cur:
        cur.execute("""
            SELECT * FROM project_collaborators
            WHERE collaborator_id = %s
            ORDER BY data_assegnazione ASC
        """, (collaborator_id,))
        return [ProjectAssignment(**known_fields(ProjectAssignment, r)) for r in cur.fetchall()]


def update_assignment(assignment_id: str, updates: Dict[str, Any]) -> bool:
    return _update('project_collaborators', assignment_id, updates, _ASSIGNMENT_COLUMNS, 'assignment', touch=False)


def remove_from_project(assignment_id: str) -> bool:
    if _delete('project_collaborators', assignment_id):
        logger.info(f"Removed assignment {assignment_id}")
        bus.emit(EVENT_COLLABORATOR_UNASSIGNED, {'assignment_id': assignment_id})
        return True
    return False


def use_tokens(assignment_id: str, tokens_used: int) -> Optional[int]:
    """
    Consume tokens on an assignment in a single UPDATE.
    Returns the new gettoni_utilizzati, or None if the assignment doesn't exist.
    """
    if tokens_used <= 0:
        raise ValueError("tokens_used must be positive")

    with get_db_cursor() as cur:
        cur.execute("""
            UPDATE project_collaborators
            SET gettoni_utilizzati = COALESCE(gettoni_utilizzati, 0) + %s
            WHERE id = %s
            RETURNING gettoni_utilizzati, gettoni_assegnati
        """, (tokens_used, assignment_id))

        row = cur.fetchone()
        if not row:
            logger.warning(f"use_tokens: assignment {assignment_id} not found")
            return None

        used = row['gettoni_utilizzati']
        if used > row['gettoni_assegnati']:
            logger.warning(f"use_tokens: assignment {assignment_id} over budget ({used}/{row['gettoni_assegnati']})")
        bus.emit(EVENT_TOKENS_USED, {'assignment_id': assignment_id, 'tokens_used': tokens_used, 'total_used': used})
        return used


# =============================================================================
# ALLOCATION (pure)
# =============================================================================

def tokens_remaining(assignment: ProjectAssignment) -> int:
    """Assigned tokens not yet consumed. Negative when over budget."""
    return (assignment.gettoni_assegnati or 0) - (assignment.gettoni_utilizzati or 0)


def collaborator_allocation(collaborator: Collaborator, assignments: Iterable[ProjectAssignment]) -> TokenAllocation:
    """Token pool of one collaborator summed over their project assignments."""
    mine = [a for a in assignments if str(a.collaborator_id) == str(collaborator.id)]
    return TokenAllocation(
        collaborator_id=collaborator.id,
        disponibili=collaborator.gettoni_disponibili or 0,
        assegnati=sum(a.gettoni_assegnati or 0 for a in mine),
        utilizzati=sum(a.gettoni_utilizzati or 0 for a in mine),
        projects=[a.project_id for a in mine],
    )
