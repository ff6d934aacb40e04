"""
CSV export of tabular projections (clients, deals, activities, revenue).

The header is the key list of the first record; a field is quoted only when
it contains a comma, quote or line break, so the output reads back with any
standard CSV parser.
"""

import csv
import dataclasses
import io
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from gestcrm.engine.periods import to_date
from gestcrm.models import Activity, Client, ClientRevenueRow, Deal

logger = logging.getLogger(__name__)


def _as_mapping(row) -> Mapping[str, Any]:
    if dataclasses.is_dataclass(row) and not isinstance(row, type):
        return dataclasses.asdict(row)
    return row


def _cell(value) -> str:
    if value is None:
        return ''
    return str(value)


def to_csv(rows: Iterable) -> str:
    """Render records as CSV text. An empty input gives an empty string."""
    rows = [_as_mapping(r) for r in rows]
    if not rows:
        return ''

    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n', quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(h)) for h in headers])
    return buffer.getvalue()


def write_csv(rows: Iterable, path) -> Optional[Path]:
    """
    Write records to `path` (UTF-8). Returns the path, or None when there
    was nothing to write.
    """
    text = to_csv(rows)
    if not text:
        logger.info(f"write_csv: nothing to export to {path}")
        return None
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    logger.info(f"write_csv: {len(text.splitlines()) - 1} rows -> {path}")
    return path


# =============================================================================
# PROJECTIONS
# =============================================================================

def _it_date(value) -> str:
    """dd/mm/YYYY, or '' when missing or unparseable."""
    try:
        d = to_date(value)
    except ValueError:
        return ''
    return d.strftime('%d/%m/%Y') if d else ''


def client_rows(clients: Iterable[Client]) -> List[Dict[str, Any]]:
    return [
        {
            'Nome Azienda': c.nome_azienda,
            'Referente': c.figura_preposta,
            'Email': c.indirizzo_mail,
            'Contatti': c.contatti,
            'Tipologia Proposta': c.tipologia_proposta or '',
            'Stato': c.stato_trattativa,
            'Scadenza Contratto': _it_date(c.data_scadenza_contratto),
            'Durata Contratto (mesi)': c.durata_contratto_mesi if c.durata_contratto_mesi is not None else '',
            'Data Creazione': _it_date(c.created_at),
        }
        for c in clients
    ]


def deal_rows(deals: Iterable[Deal], clients: Iterable[Client] = ()) -> List[Dict[str, Any]]:
    names = {str(c.id): c.nome_azienda for c in clients if c.id is not None}
    rows = []
    for d in deals:
        if d.client is not None:
            client_name = d.client.nome_azienda
        else:
            client_name = names.get(str(d.client_id), '')
        rows.append({
            'Oggetto': d.oggetto_trattativa,
            'Cliente': client_name,
            'Valore': d.valore_stimato,
            'Stato': d.stato_trattativa,
            'Data Apertura': _it_date(d.data_apertura),
            'Prossimo Contatto': _it_date(d.scadenza_prossimo_contatto),
        })
    return rows


def activity_rows(
    activities: Iterable[Activity],
    clients: Iterable[Client] = (),
    deals: Iterable[Deal] = (),
) -> List[Dict[str, Any]]:
    client_names = {str(c.id): c.nome_azienda for c in clients if c.id is not None}
    deal_subjects = {str(d.id): d.oggetto_trattativa for d in deals if d.id is not None}
    rows = []
    for a in activities:
        when = a.data_ora
        rows.append({
            'Tipo': a.tipo_attivita,
            'Data': _it_date(when),
            'Ora': when.strftime('%H:%M') if isinstance(when, datetime) else '',
            'Esito': a.esito,
            'Cliente': client_names.get(str(a.client_id), '') if a.client_id is not None else '',
            'Trattativa': deal_subjects.get(str(a.deal_id), '') if a.deal_id is not None else '',
            'Note': a.note or '',
        })
    return rows


def revenue_rows(revenue: Iterable[ClientRevenueRow]) -> List[Dict[str, Any]]:
    return [
        {
            'Cliente': r.client,
            'Fatturato': r.revenue,
            'Trattative Vinte': r.deals,
            'Fatturato Medio': r.average.quantize(Decimal('0.01')),
        }
        for r in revenue
    ]
