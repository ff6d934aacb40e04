#!/usr/bin/env python3
"""
Gestionale CRM Terminal CLI
Command-line interface for clients, deals, activities, contract reminders,
operations and reports.
"""

import logging
import re
import time
import click
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from gestcrm.config import config
from gestcrm.engine import crm, dashboard, notifications, operations, reports, users
from gestcrm.engine.periods import local_now, local_today
from gestcrm.engine.export import (
    activity_rows, client_rows, deal_rows, revenue_rows, write_csv,
)
from gestcrm.logging_config import configure_logging, log_call
from gestcrm.models import (
    Activity, Client, Collaborator, Deal, Project, ProjectAssignment,
    ACTIVITY_OUTCOMES, ACTIVITY_TYPES, DEAL_STATES, PROJECT_PRIORITIES, PROJECT_STATES,
)
from gestcrm.session import (
    AccountNotApprovedError, BypassSessionProvider, NotAuthenticatedError, NotAuthorizedError,
    require_owner, require_user,
)

_EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

EXPORT_KINDS = {
    'clients': 'clienti',
    'deals': 'trattative',
    'activities': 'attivita',
    'revenue': 'reportistica-fatturato',
}


@log_call
def _prompt_date(label: str, default: Optional[date] = None) -> Optional[date]:
    """Prompt for a date, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("gestcrm")
    default_str = str(default) if default else ""
    while True:
        raw = click.prompt(label, default=default_str, show_default=bool(default_str)) or ""
        if not raw:
            return None
        try:
            return date.fromisoformat(raw)
        except ValueError:
            logger.debug(f"_prompt_date | rejected input={raw!r}")
            click.echo("  Formato non valido, usa YYYY-MM-DD.", err=True)


@log_call
def _prompt_email(required: bool = False) -> Optional[str]:
    """Prompt for an email address, re-prompting on bad format. Returns None if left blank."""
    logger = logging.getLogger("gestcrm")
    while True:
        raw = click.prompt("Email", default="", show_default=False) or None
        if raw is None and not required:
            return None
        if raw and _EMAIL_RE.match(raw):
            return raw
        logger.debug(f"_prompt_email | rejected input={raw!r}")
        click.echo("  Indirizzo email non valido, riprova.", err=True)


@log_call
def _prompt_amount(label: str, default: str = "0") -> Decimal:
    """Prompt for a non-negative euro amount ('1500', '1500.50' or '1500,50')."""
    logger = logging.getLogger("gestcrm")
    while True:
        raw = click.prompt(label, default=default)
        try:
            amount = Decimal(str(raw).strip().replace(',', '.'))
        except InvalidOperation:
            amount = None
        if amount is not None and amount.is_finite() and amount >= 0:
            return amount
        logger.debug(f"_prompt_amount | rejected input={raw!r}")
        click.echo("  Importo non valido, inserisci un numero positivo.", err=True)


def _euro(value) -> str:
    return f"€{Decimal(value or 0):,.2f}"


def _user_id(ctx: click.Context) -> str:
    """Id of the approved current user. Exits non-zero otherwise."""
    logger = logging.getLogger("gestcrm")
    provider = ctx.obj['session']
    try:
        return require_user(provider).id
    except AccountNotApprovedError as e:
        logger.warning(f"access blocked: {e}")
        click.echo(f"\n{e}\n", err=True)
        ctx.exit(1)
    except NotAuthenticatedError as e:
        logger.warning(f"access blocked: {e}")
        click.echo(f"{e}. Effettua l'accesso.", err=True)
        ctx.exit(1)


def _owner_id(ctx: click.Context) -> str:
    """Id of the current user when they are an approved owner. Exits non-zero otherwise."""
    logger = logging.getLogger("gestcrm")
    provider = ctx.obj['session']
    try:
        return require_owner(provider).id
    except (AccountNotApprovedError, NotAuthorizedError) as e:
        logger.warning(f"user management blocked: {e}")
        click.echo(f"\n{e}\n", err=True)
        ctx.exit(1)
    except NotAuthenticatedError as e:
        logger.warning(f"user management blocked: {e}")
        click.echo(f"{e}. Effettua l'accesso.", err=True)
        ctx.exit(1)


@click.group()
@click.pass_context
def cli(ctx):
    """Gestionale CRM - Clienti, trattative e scadenze contratti"""
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj.setdefault('session', BypassSessionProvider())


# =============================================================================
# CLIENTS COMMANDS
# =============================================================================

@cli.group()
def clients():
    """Manage clients and their contract tracking"""
    pass


@clients.command('list')
@click.option('--nome', help='Filter by company name (partial match)')
@click.option('--stato', help='Filter by negotiation state')
@click.option('--limit', default=500, help='Max results (default: 500)')
@log_call
def clients_list(nome, stato, limit):
    """List clients"""
    results = crm.search_clients(nome=nome, stato=stato, limit=limit)

    if not results:
        click.echo("Nessun cliente trovato.")
        return

    click.echo(f"\n{len(results)} clienti:\n")
    click.echo(f"{'ID':<38} {'Azienda':<30} {'Stato':<10} {'Scadenza':<12}")
    click.echo("-" * 92)

    for c in results:
        expiry = str(c.data_scadenza_contratto) if c.data_scadenza_contratto else ''
        click.echo(f"{str(c.id):<38} {c.nome_azienda[:28]:<30} {c.stato_trattativa:<10} {expiry:<12}")


@clients.command('show')
@click.argument('client_id')
@click.pass_context
@log_call
def clients_show(ctx, client_id):
    """Show client details, deals and reminders"""
    logger = logging.getLogger("gestcrm")
    user_id = _user_id(ctx)
    client = crm.get_client(client_id)

    if not client:
        logger.warning(f"clients_show | client_id={client_id} not found")
        click.echo(f"Cliente {client_id} non trovato.", err=True)
        return

    click.echo(f"\n{'='*80}")
    click.echo(f"CLIENTE: {client.nome_azienda}")
    click.echo(f"{'='*80}")
    click.echo(f"Referente:    {client.figura_preposta or '(non impostato)'}")
    click.echo(f"Email:        {client.indirizzo_mail or '(non impostato)'}")
    click.echo(f"Contatti:     {client.contatti or '(non impostato)'}")
    click.echo(f"Proposta:     {client.tipologia_proposta or '(non impostata)'}")
    click.echo(f"Stato:        {client.stato_trattativa}")
    click.echo(f"Contratto:    {client.data_inizio_contratto or '?'} -> {client.data_scadenza_contratto or '?'}")
    click.echo(f"Durata:       {client.durata_contratto_mesi or '?'} mesi")
    click.echo(f"Promemoria:   {'attivi' if client.notifiche_attive else 'disattivati'}")

    click.echo(f"\n{'='*80}")
    click.echo("TRATTATIVE")
    click.echo(f"{'='*80}")
    client_deals = crm.fetch_deals(client_id=client_id)
    if client_deals:
        for d in client_deals:
            click.echo(f"[{d.data_apertura or '?'}] {d.oggetto_trattativa} - {_euro(d.valore_stimato)} ({d.stato_trattativa})")
    else:
        click.echo("Nessuna trattativa.")

    reminders = notifications.fetch_client_notifications(user_id, client_id)
    if reminders:
        click.echo(f"\n{'='*80}")
        click.echo("PROMEMORIA SCADENZA")
        click.echo(f"{'='*80}")
        for n in reminders:
            flag = ' ' if n.letta else '*'
            click.echo(f"{flag} [{n.data_notifica}] {n.messaggio}")

    click.echo()


@clients.command('add')
@click.pass_context
@log_call
def clients_add(ctx):
    """Add a new client (interactive)"""
    user_id = _user_id(ctx)
    click.echo("\n=== NUOVO CLIENTE ===\n")

    nome_azienda = click.prompt("Nome azienda", type=str)
    figura_preposta = click.prompt("Referente", default="", show_default=False)
    contatti = click.prompt("Contatti (telefono)", default="", show_default=False)
    indirizzo_mail = _prompt_email() or ''
    tipologia_proposta = click.prompt("Tipologia proposta", default="", show_default=False) or None
    stato = click.prompt(
        "Stato",
        type=click.Choice(['in_corso', 'vinta', 'persa', 'sospesa'], case_sensitive=False),
        default='in_corso',
    )

    data_inizio = None
    durata_mesi = None
    data_scadenza = None
    tracking = click.confirm("Monitorare la scadenza del contratto?", default=False)
    if tracking:
        data_inizio = _prompt_date("Inizio contratto (YYYY-MM-DD)", default=local_today())
        durata_mesi = click.prompt("Durata contratto (mesi)", type=click.IntRange(min=1), default=12)
        data_scadenza = _prompt_date("Scadenza (YYYY-MM-DD, Invio per calcolarla)")

    client = Client(
        nome_azienda=nome_azienda,
        figura_preposta=figura_preposta,
        contatti=contatti,
        indirizzo_mail=indirizzo_mail,
        tipologia_proposta=tipologia_proposta,
        stato_trattativa=stato,
        data_inizio_contratto=data_inizio,
        durata_contratto_mesi=durata_mesi,
        data_scadenza_contratto=data_scadenza,
        notifiche_attive=tracking,
        user_id=user_id,
    )

    client_id = crm.create_client(client)
    click.echo(f"\n✓ Creato cliente {client_id}: {nome_azienda}")
    if client.data_scadenza_contratto:
        click.echo(f"  Scadenza contratto: {client.data_scadenza_contratto}")


@clients.command('edit')
@click.argument('client_id')
@click.option('--stato', help='Update negotiation state')
@click.option('--email', help='Update email')
@click.option('--scadenza', type=click.DateTime(formats=['%Y-%m-%d']), help='Update contract expiry (YYYY-MM-DD)')
@click.option('--notifiche/--no-notifiche', default=None, help='Switch expiry reminders on or off')
@log_call
def clients_edit(client_id, stato, email, scadenza, notifiche):
    """Edit a client (use options to set fields)"""
    logger = logging.getLogger("gestcrm")
    updates = {}
    if stato:
        updates['stato_trattativa'] = stato
    if email:
        updates['indirizzo_mail'] = email
    if scadenza:
        updates['data_scadenza_contratto'] = scadenza.date()
    if notifiche is not None:
        updates['notifiche_attive'] = notifiche

    if not updates:
        click.echo("Nessuna modifica. Usa --stato, --email, --scadenza o --notifiche/--no-notifiche", err=True)
        return

    if crm.update_client(client_id, updates):
        click.echo(f"✓ Aggiornato cliente {client_id}")
    else:
        logger.warning(f"clients_edit | client_id={client_id} not found")
        click.echo(f"Cliente {client_id} non trovato", err=True)


@clients.command('delete')
@click.argument('client_id')
@click.confirmation_option(prompt="Eliminare il cliente con trattative, attività e promemoria?")
@log_call
def clients_delete(client_id):
    """Delete a client"""
    if crm.delete_client(client_id):
        click.echo(f"✓ Eliminato cliente {client_id}")
    else:
        click.echo(f"Cliente {client_id} non trovato", err=True)


# =============================================================================
# DEALS COMMANDS
# =============================================================================

@cli.group()
def deals():
    """Manage deals (trattative)"""
    pass


@deals.command('list')
@click.option('--stato', type=click.Choice(DEAL_STATES), help='Filter by state')
@click.option('--client', 'client_id', help='Filter by client id')
@log_call
def deals_list(stato, client_id):
    """List deals"""
    results = crm.fetch_deals(stato=stato, client_id=client_id)

    if not results:
        click.echo("Nessuna trattativa trovata.")
        return

    click.echo(f"\n{len(results)} trattative (pipeline aperta: {_euro(reports.pipeline_value(results))}):\n")
    click.echo(f"{'ID':<38} {'Oggetto':<28} {'Cliente':<22} {'Valore':>12} {'Stato':<9}")
    click.echo("-" * 112)

    for d in results:
        client_name = d.client.nome_azienda if d.client else ''
        click.echo(
            f"{str(d.id):<38} {d.oggetto_trattativa[:26]:<28} {client_name[:20]:<22} "
            f"{_euro(d.valore_stimato):>12} {d.stato_trattativa:<9}"
        )


@deals.command('add')
@click.argument('client_id')
@click.pass_context
@log_call
def deals_add(ctx, client_id):
    """Open a deal for a client (interactive)"""
    logger = logging.getLogger("gestcrm")
    user_id = _user_id(ctx)

    client = crm.get_client(client_id)
    if not client:
        logger.warning(f"deals_add | client_id={client_id} not found")
        click.echo(f"Cliente {client_id} non trovato.", err=True)
        return

    click.echo(f"\n=== NUOVA TRATTATIVA: {client.nome_azienda} ===\n")

    oggetto = click.prompt("Oggetto", type=str)
    valore = _prompt_amount("Valore stimato (€)")
    data_apertura = _prompt_date("Data apertura (YYYY-MM-DD)", default=local_today())
    stato = click.prompt("Stato", type=click.Choice(DEAL_STATES), default='in_corso')
    prossimo_contatto = _prompt_date("Prossimo contatto (YYYY-MM-DD, Invio per saltare)")
    note = click.prompt("Note", default="", show_default=False) or None

    deal = Deal(
        client_id=client_id,
        oggetto_trattativa=oggetto,
        valore_stimato=valore,
        data_apertura=data_apertura,
        stato_trattativa=stato,
        scadenza_prossimo_contatto=prossimo_contatto,
        note=note,
        user_id=user_id,
    )

    deal_id = crm.create_deal(deal)
    click.echo(f"\n✓ Creata trattativa {deal_id}: {oggetto} ({_euro(valore)})")


@deals.command('status')
@click.argument('deal_id')
@click.argument('stato', type=click.Choice(DEAL_STATES))
@log_call
def deals_status(deal_id, stato):
    """Move a deal to in_corso / vinta / persa"""
    if crm.update_deal(deal_id, {'stato_trattativa': stato}):
        click.echo(f"✓ Trattativa {deal_id} -> {stato}")
    else:
        click.echo(f"Trattativa {deal_id} non trovata", err=True)


@deals.command('delete')
@click.argument('deal_id')
@click.confirmation_option(prompt="Eliminare la trattativa?")
@log_call
def deals_delete(deal_id):
    """Delete a deal"""
    if crm.delete_deal(deal_id):
        click.echo(f"✓ Eliminata trattativa {deal_id}")
    else:
        click.echo(f"Trattativa {deal_id} non trovata", err=True)


# =============================================================================
# ACTIVITIES COMMANDS
# =============================================================================

@cli.group()
def activities():
    """Log calls, emails and meetings"""
    pass


@activities.command('list')
@click.option('--client', 'client_id', help='Filter by client id')
@click.pass_context
@log_call
def activities_list(ctx, client_id):
    """List your activities, most recent first"""
    user_id = _user_id(ctx)
    results = crm.fetch_activities(user_id=user_id, client_id=client_id)

    if not results:
        click.echo("Nessuna attività.")
        return

    click.echo(f"\n{len(results)} attività:\n")
    for a in results:
        when = a.data_ora.strftime('%Y-%m-%d %H:%M') if a.data_ora else '?'
        click.echo(f"[{when}] {a.tipo_attivita:<8} {a.esito:<17} {str(a.id)}")
        if a.note:
            click.echo(f"  {a.note[:100]}")


@activities.command('log')
@click.argument('client_id')
@click.option('--deal', 'deal_id', help='Link the activity to a deal')
@click.pass_context
@log_call
def activities_log(ctx, client_id, deal_id):
    """Log an activity with a client"""
    logger = logging.getLogger("gestcrm")
    user_id = _user_id(ctx)

    client = crm.get_client(client_id)
    if not client:
        logger.warning(f"activities_log | client_id={client_id} not found")
        click.echo(f"Cliente {client_id} non trovato.", err=True)
        return

    click.echo(f"\n=== REGISTRA ATTIVITÀ: {client.nome_azienda} ===\n")

    tipo = click.prompt("Tipo", type=click.Choice(ACTIVITY_TYPES, case_sensitive=False), default='call')
    giorno = _prompt_date("Data (YYYY-MM-DD)", default=local_today()) or local_today()
    ora = click.prompt("Ora (HH:MM)", default=local_now().strftime('%H:%M'))
    try:
        orario = datetime.strptime(ora, '%H:%M').time()
    except ValueError:
        logger.debug(f"activities_log | rejected time={ora!r}")
        orario = datetime.min.time()
    esito = click.prompt("Esito", type=click.Choice(ACTIVITY_OUTCOMES), default='da_richiamare')
    note = click.prompt("Note", default="", show_default=False) or None

    activity = Activity(
        tipo_attivita=tipo,
        data_ora=datetime.combine(giorno, orario, tzinfo=local_now().tzinfo),
        esito=esito,
        client_id=client_id,
        deal_id=deal_id,
        note=note,
        user_id=user_id,
    )

    activity_id = crm.log_activity(activity)
    click.echo(f"\n✓ Registrata attività {activity_id}")


@activities.command('delete')
@click.argument('activity_id')
@click.pass_context
@log_call
def activities_delete(ctx, activity_id):
    """Delete one of your activities"""
    user_id = _user_id(ctx)
    if crm.delete_activity(activity_id, user_id=user_id):
        click.echo(f"✓ Eliminata attività {activity_id}")
    else:
        click.echo(f"Attività {activity_id} non trovata", err=True)


# =============================================================================
# NOTIFICATIONS COMMANDS
# =============================================================================

@cli.group('notifications')
def notifications_group():
    """Contract expiry reminders"""
    pass


@notifications_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include read and not-yet-due reminders')
@click.pass_context
@log_call
def notifications_list(ctx, show_all):
    """List pending reminders"""
    user_id = _user_id(ctx)
    results = notifications.fetch_notifications(user_id, pending_only=not show_all)

    if not results:
        click.echo("Nessun promemoria in attesa. ✓")
        return

    click.echo(f"\n🔔 {len(results)} promemoria:\n")
    for n in results:
        flag = ' ' if n.letta else '*'
        days = f"{n.giorni_rimanenti} gg" if n.giorni_rimanenti is not None else ''
        click.echo(f"{flag} {str(n.id):<38} {n.tipo_notifica:<13} {days:>7}  {n.nome_azienda or ''}")
        click.echo(f"    {n.messaggio}")


@notifications_group.command('read')
@click.argument('notification_id')
@log_call
def notifications_read(notification_id):
    """Mark one reminder as read"""
    notifications.mark_notification_read(notification_id)
    click.echo(f"✓ Promemoria {notification_id} letto")


@notifications_group.command('read-all')
@click.pass_context
@log_call
def notifications_read_all(ctx):
    """Mark every pending reminder as read"""
    logger = logging.getLogger("gestcrm")
    user_id = _user_id(ctx)
    pending = notifications.fetch_notifications(user_id, pending_only=True)

    if not pending:
        click.echo("Nessun promemoria da segnare.")
        return

    try:
        changed = notifications.mark_notifications_read([n.id for n in pending])
    except Exception as e:
        logger.error(f"notifications read-all failed: {e}", exc_info=True)
        click.echo(f"Errore: {e}", err=True)
        ctx.exit(1)
    click.echo(f"✓ {changed} promemoria segnati come letti")


@notifications_group.command('delete')
@click.argument('notification_id')
@click.pass_context
@log_call
def notifications_delete(ctx, notification_id):
    """Delete a reminder"""
    logger = logging.getLogger("gestcrm")
    try:
        deleted = notifications.delete_notification(notification_id)
    except Exception as e:
        logger.error(f"notifications delete failed for {notification_id}: {e}", exc_info=True)
        click.echo(f"Errore: {e}", err=True)
        ctx.exit(1)

    if deleted:
        click.echo(f"✓ Eliminato promemoria {notification_id}")
    else:
        click.echo(f"Promemoria {notification_id} non trovato", err=True)


@notifications_group.command('generate')
@log_call
def notifications_generate():
    """Create every reminder that has come due"""
    created = notifications.generate_notifications()
    click.echo(f"✓ {created} nuovi promemoria")


@notifications_group.command('watch')
@click.option('--interval', type=float, default=None,
              help='Minutes between refreshes (default: NOTIFICATION_REFRESH_MINUTES)')
@click.option('--count', 'ticks', type=int, default=0, help='Stop after N refreshes (0 = until Ctrl-C)')
@click.pass_context
@log_call
def notifications_watch(ctx, interval, ticks):
    """Refresh the pending reminder count periodically"""
    user_id = _user_id(ctx)
    minutes = interval if interval is not None else config.NOTIFICATION_REFRESH_MINUTES
    seen = 0

    try:
        while True:
            notifications.generate_notifications()
            counts = notifications.get_notification_counts(user_id)
            stamp = local_now().strftime('%H:%M:%S')
            click.echo(f"[{stamp}] 🔔 {counts.pending} in attesa | {counts.expiring_soon} contratti in scadenza")

            seen += 1
            if ticks and seen >= ticks:
                break
            time.sleep(minutes * 60)
    except KeyboardInterrupt:
        click.echo("\nInterrotto.")


# =============================================================================
# OPERATIONS COMMANDS
# =============================================================================

@cli.group()
def projects():
    """Manage delivery projects"""
    pass


@projects.command('list')
@click.option('--active', is_flag=True, help='Only projects being planned or in progress')
@log_call
def projects_list(active):
    """List projects"""
    results = operations.fetch_active_projects() if active else operations.fetch_projects()

    if not results:
        click.echo("Nessun progetto trovato.")
        return

    click.echo(f"\n{len(results)} progetti:\n")
    click.echo(f"{'ID':<38} {'Progetto':<30} {'Stato':<15} {'Priorità':<9}")
    click.echo("-" * 95)
    for p in results:
        click.echo(f"{str(p.id):<38} {p.nome_progetto[:28]:<30} {p.stato:<15} {p.priorita:<9}")


@projects.command('add')
@click.pass_context
@log_call
def projects_add(ctx):
    """Add a new project (interactive)"""
    user_id = _user_id(ctx)
    click.echo("\n=== NUOVO PROGETTO ===\n")

    nome = click.prompt("Nome progetto", type=str)
    descrizione = click.prompt("Descrizione", default="", show_default=False) or None
    client_id = click.prompt("ID cliente (Invio per saltare)", default="", show_default=False) or None
    priorita = click.prompt("Priorità", type=click.Choice(PROJECT_PRIORITIES), default='media')
    data_inizio = _prompt_date("Data inizio (YYYY-MM-DD)", default=local_today())
    data_fine = _prompt_date("Fine prevista (YYYY-MM-DD, Invio per saltare)")
    budget = _prompt_amount("Budget stimato (€)")

    project = Project(
        nome_progetto=nome,
        descrizione=descrizione,
        client_id=client_id,
        priorita=priorita,
        data_inizio=data_inizio,
        data_fine_prevista=data_fine,
        budget_stimato=budget,
        user_id=user_id,
    )

    project_id = operations.create_project(project)
    click.echo(f"\n✓ Creato progetto {project_id}: {nome}")


@projects.command('status')
@click.argument('project_id')
@click.argument('stato', type=click.Choice(PROJECT_STATES))
@log_call
def projects_status(project_id, stato):
    """Change a project's state"""
    updates = {'stato': stato}
    if stato == 'completato':
        updates['data_fine_effettiva'] = local_today()

    if operations.update_project(project_id, updates):
        click.echo(f"✓ Progetto {project_id} -> {stato}")
    else:
        click.echo(f"Progetto {project_id} non trovato", err=True)


@projects.command('team')
@click.argument('project_id')
@log_call
def projects_team(project_id):
    """Collaborators assigned to a project"""
    assignments = operations.fetch_project_collaborators(project_id)

    if not assignments:
        click.echo("Nessun collaboratore assegnato.")
        return

    for a in assignments:
        click.echo(
            f"{str(a.id):<38} {str(a.collaborator_id):<38} {a.ruolo_progetto:<14} "
            f"{a.gettoni_utilizzati}/{a.gettoni_assegnati} gettoni "
            f"(residui {operations.tokens_remaining(a)})"
        )


@projects.command('delete')
@click.argument('project_id')
@click.confirmation_option(prompt="Eliminare il progetto?")
@log_call
def projects_delete(project_id):
    """Delete a project"""
    if operations.delete_project(project_id):
        click.echo(f"✓ Eliminato progetto {project_id}")
    else:
        click.echo(f"Progetto {project_id} non trovato", err=True)


@cli.group()
def collaborators():
    """Manage collaborators and their token (gettone) budgets"""
    pass


@collaborators.command('list')
@log_call
def collaborators_list():
    """List collaborators with their token allocation"""
    results = operations.fetch_collaborators()

    if not results:
        click.echo("Nessun collaboratore.")
        return

    click.echo(f"\n{len(results)} collaboratori:\n")
    click.echo(f"{'ID':<38} {'Nome':<26} {'Disp.':>6} {'Ass.':>6} {'Usati':>6} {'Liberi':>6}")
    click.echo("-" * 92)
    for c in results:
        allocation = operations.collaborator_allocation(c, operations.fetch_collaborator_assignments(c.id))
        name = f"{c.nome} {c.cognome}"
        click.echo(
            f"{str(c.id):<38} {name[:24]:<26} {allocation.disponibili:>6} {allocation.assegnati:>6} "
            f"{allocation.utilizzati:>6} {allocation.liberi:>6}"
        )


@collaborators.command('add')
@click.pass_context
@log_call
def collaborators_add(ctx):
    """Add a new collaborator (interactive)"""
    user_id = _user_id(ctx)
    click.echo("\n=== NUOVO COLLABORATORE ===\n")

    nome = click.prompt("Nome", type=str)
    cognome = click.prompt("Cognome", type=str)
    email = _prompt_email(required=True)
    telefono = click.prompt("Telefono", default="", show_default=False) or None
    ruolo = click.prompt("Ruolo principale", default="altro")
    tipo_compenso = click.prompt("Compenso", type=click.Choice(['gettone', 'fisso', 'misto']), default='gettone')
    compenso_gettone = _prompt_amount("Compenso per gettone (€)") if tipo_compenso != 'fisso' else None
    compenso_fisso = _prompt_amount("Compenso fisso (€)") if tipo_compenso != 'gettone' else None
    gettoni = click.prompt("Gettoni disponibili", type=click.IntRange(min=0), default=0)

    collaborator = Collaborator(
        nome=nome,
        cognome=cognome,
        email=email,
        telefono=telefono,
        ruolo_principale=ruolo,
        tipo_compenso=tipo_compenso,
        compenso_per_gettone=compenso_gettone,
        compenso_fisso=compenso_fisso,
        gettoni_disponibili=gettoni,
        user_id=user_id,
    )

    collaborator_id = operations.create_collaborator(collaborator)
    click.echo(f"\n✓ Creato collaboratore {collaborator_id}: {nome} {cognome}")


@collaborators.command('tokens')
@click.argument('collaborator_id')
@click.argument('count', type=click.IntRange(min=0))
@log_call
def collaborators_tokens(collaborator_id, count):
    """Set a collaborator's available tokens"""
    if operations.update_tokens(collaborator_id, count):
        click.echo(f"✓ Gettoni disponibili: {count}")
    else:
        click.echo(f"Collaboratore {collaborator_id} non trovato", err=True)


@collaborators.command('assign')
@click.argument('collaborator_id')
@click.argument('project_id')
@click.argument('gettoni', type=click.IntRange(min=0))
@click.option('--ruolo', default='altro', help='Role on the project')
@log_call
def collaborators_assign(collaborator_id, project_id, gettoni, ruolo):
    """Assign a collaborator to a project with a token budget"""
    assignment = ProjectAssignment(
        project_id=project_id,
        collaborator_id=collaborator_id,
        ruolo_progetto=ruolo,
        gettoni_assegnati=gettoni,
        data_assegnazione=local_today(),
    )
    assignment_id = operations.assign_to_project(assignment)
    click.echo(f"✓ Assegnazione {assignment_id} ({gettoni} gettoni)")


@collaborators.command('use')
@click.argument('assignment_id')
@click.argument('tokens', type=click.IntRange(min=1))
@log_call
def collaborators_use(assignment_id, tokens):
    """Consume tokens on an assignment"""
    used = operations.use_tokens(assignment_id, tokens)
    if used is None:
        click.echo(f"Assegnazione {assignment_id} non trovata", err=True)
        return
    click.echo(f"✓ Gettoni utilizzati: {used}")


@collaborators.command('unassign')
@click.argument('assignment_id')
@log_call
def collaborators_unassign(assignment_id):
    """Remove a collaborator from a project"""
    if operations.remove_from_project(assignment_id):
        click.echo(f"✓ Rimossa assegnazione {assignment_id}")
    else:
        click.echo(f"Assegnazione {assignment_id} non trovata", err=True)


@collaborators.command('delete')
@click.argument('collaborator_id')
@click.confirmation_option(prompt="Eliminare il collaboratore?")
@log_call
def collaborators_delete(collaborator_id):
    """Delete a collaborator"""
    if operations.delete_collaborator(collaborator_id):
        click.echo(f"✓ Eliminato collaboratore {collaborator_id}")
    else:
        click.echo(f"Collaboratore {collaborator_id} non trovato", err=True)


# =============================================================================
# USERS COMMANDS (owner only)
# =============================================================================

@cli.group('users')
def users_group():
    """Approve or revoke user accounts (owners only)"""
    pass


@users_group.command('list')
@click.option('--status', type=click.Choice(['all', *users.USER_STATUSES]), default='all',
              help='Filter by approval status')
@click.pass_context
@log_call
def users_list(ctx, status):
    """List registered accounts, newest first"""
    _owner_id(ctx)
    results = users.fetch_users(status=None if status == 'all' else status)

    if not results:
        click.echo("Nessun utente trovato.")
        return

    pending = sum(1 for u in results if not u.approved)
    click.echo(f"\n=== UTENTI ({len(results)}, {pending} in attesa) ===\n")
    for u in results:
        badge = "Approvato" if u.approved else "In attesa"
        registered = u.created_at.strftime('%d/%m/%Y') if u.created_at else '-'
        nome = f"{u.nome} {u.cognome}".strip() or '-'
        click.echo(f"{str(u.id):<38} {u.email:<32} {nome:<24} {u.ruolo:<12} {badge:<10} {registered}")


def _set_approval(ctx: click.Context, user_id: str, approved: bool) -> None:
    logger = logging.getLogger("gestcrm")
    _owner_id(ctx)
    try:
        changed = users.set_user_approval(user_id, approved)
    except Exception as e:
        logger.error(f"users approval failed for {user_id}: {e}", exc_info=True)
        click.echo(f"Errore: {e}", err=True)
        ctx.exit(1)

    if not changed:
        stato = "già approvato" if approved else "già in attesa"
        click.echo(f"Utente {user_id} non trovato o {stato}", err=True)
    elif approved:
        click.echo(f"✓ Utente {user_id} approvato")
    else:
        click.echo(f"✓ Approvazione revocata per {user_id}")


@users_group.command('approve')
@click.argument('user_id')
@click.pass_context
@log_call
def users_approve(ctx, user_id):
    """Approve an account so it can use the CRM"""
    _set_approval(ctx, user_id, True)


@users_group.command('revoke')
@click.argument('user_id')
@click.pass_context
@log_call
def users_revoke(ctx, user_id):
    """Put an account back in the approval queue"""
    _set_approval(ctx, user_id, False)


# =============================================================================
# DASHBOARD & REPORTS
# =============================================================================

@cli.command('dashboard')
@click.pass_context
@log_call
def dashboard_cmd(ctx):
    """Key figures at a glance"""
    user_id = _user_id(ctx)
    stats = dashboard.load_dashboard_stats(user_id)

    click.echo(f"\n{'='*60}")
    click.echo("DASHBOARD")
    click.echo(f"{'='*60}")
    click.echo(f"Clienti:                 {stats.total_clients}")
    click.echo(f"Trattative aperte:       {stats.active_deals}")
    click.echo(f"Trattative vinte:        {stats.won_deals}")
    click.echo(f"Trattative perse:        {stats.lost_deals}")
    click.echo(f"Pipeline aperta:         {_euro(stats.total_deal_value)}")
    click.echo(f"Attività settimana:      {stats.this_week_activities}")
    click.echo(f"Promemoria in attesa:    {stats.pending_notifications}")
    click.echo(f"Contratti in scadenza:   {stats.contracts_expiring_soon}")

    click.echo(f"\n{'-'*60}")
    best = stats.best_client_by_revenue
    click.echo(f"Miglior cliente:         {f'{best.nome_azienda} ({_euro(best.total_revenue)})' if best else 'N/A'}")
    longest = stats.best_client_by_contract_duration
    click.echo(
        f"Contratto più lungo:     "
        f"{f'{longest.nome_azienda} ({longest.contract_duration_months} mesi)' if longest else 'N/A'}"
    )

    perf = stats.best_sales_performance
    if perf:
        if perf.best_month:
            click.echo(f"Mese migliore:           {perf.best_month.month} "
                       f"({perf.best_month.deals_count} vinte, {_euro(perf.best_month.total_value)})")
        if perf.best_day:
            click.echo(f"Giorno migliore:         {perf.best_day.date} ({perf.best_day.deals_count} vinte)")
        click.echo(f"Trattativa più grande:   {perf.biggest_deal.oggetto_trattativa} "
                   f"({_euro(perf.biggest_deal.valore_stimato)}, {perf.biggest_deal.client_name})")
    click.echo()


@cli.group()
def report():
    """Revenue reports"""
    pass


@report.command('revenue')
@log_call
def report_revenue():
    """Won revenue per client"""
    all_deals = crm.fetch_deals()
    rows = reports.revenue_by_client(crm.fetch_clients(), all_deals)

    click.echo(f"\nFatturato totale:      {_euro(reports.total_revenue(all_deals))}")
    click.echo(f"Fatturato mese:        {_euro(reports.current_month_revenue(all_deals))}")

    if not rows:
        click.echo("\nNessuna trattativa vinta.")
        return

    click.echo(f"\n{'Cliente':<30} {'Fatturato':>14} {'Vinte':>6} {'Medio':>14}")
    click.echo("-" * 68)
    for r in rows:
        click.echo(f"{r.client[:28]:<30} {_euro(r.revenue):>14} {r.deals:>6} {_euro(r.average):>14}")


@report.command('trend')
@click.option('--months', type=click.IntRange(min=1), default=None,
              help='Number of months (default: REVENUE_TREND_MONTHS)')
@log_call
def report_trend(months):
    """Won revenue per month, most recent months"""
    months = months or config.REVENUE_TREND_MONTHS
    for bucket in reports.monthly_revenue_trend(crm.fetch_deals(), months=months):
        click.echo(f"{bucket.label}  {_euro(bucket.revenue):>14}")


@report.command('quarters')
@click.option('--year', type=int, default=None, help='Only this year')
@log_call
def report_quarters(year):
    """Won revenue per quarter"""
    buckets = reports.quarterly_revenue(crm.fetch_deals(), year=year)
    if not buckets:
        click.echo("Nessun fatturato nel periodo.")
        return
    for bucket in buckets:
        click.echo(f"{bucket.label:<8} {_euro(bucket.revenue):>14}")


@cli.command('export')
@click.argument('kind', type=click.Choice(sorted(EXPORT_KINDS)))
@click.option('--output', '-o', type=click.Path(dir_okay=False), default=None,
              help='Output file (default: EXPORT_DIR/<name>-<date>.csv)')
@click.pass_context
@log_call
def export_cmd(ctx, kind, output):
    """Export clients, deals, activities or revenue to CSV"""
    if kind == 'clients':
        rows = client_rows(crm.fetch_clients())
    elif kind == 'deals':
        rows = deal_rows(crm.fetch_deals())
    elif kind == 'activities':
        user_id = _user_id(ctx)
        rows = activity_rows(crm.fetch_activities(user_id=user_id), crm.fetch_clients(), crm.fetch_deals())
    else:
        rows = revenue_rows(reports.revenue_by_client(crm.fetch_clients(), crm.fetch_deals()))

    path = Path(output) if output else Path(config.EXPORT_DIR) / f"{EXPORT_KINDS[kind]}-{local_today()}.csv"
    written = write_csv(rows, path)

    if written is None:
        click.echo("Niente da esportare.")
        return
    click.echo(f"✓ Esportate {len(rows)} righe in {written}")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
