"""
Data Models
Dataclasses for all entities. These are pure Python objects, no database logic.

Stored entities mirror their table columns so a RealDictCursor row unpacks
straight into them. The dashboard/report records at the bottom are derived
values and are never persisted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


# Deal / client pipeline states
STATO_IN_CORSO = 'in_corso'
STATO_VINTA = 'vinta'
STATO_PERSA = 'persa'
STATO_SOSPESA = 'sospesa'  # clients only
DEAL_STATES = (STATO_IN_CORSO, STATO_VINTA, STATO_PERSA)

# Contract reminder types
SCADENZA_45 = 'scadenza_45'
REMINDER_30 = 'reminder_30'
SOLLECITO_15 = 'sollecito_15'

ACTIVITY_TYPES = ('call', 'email', 'meeting')
ACTIVITY_OUTCOMES = ('positiva', 'da_richiamare', 'nessuna_risposta')

PROJECT_STATES = ('pianificazione', 'in_corso', 'completato', 'sospeso', 'annullato')
PROJECT_ACTIVE_STATES = ('pianificazione', 'in_corso')
PROJECT_PRIORITIES = ('bassa', 'media', 'alta', 'critica')

# Account roles (users.ruolo); only owners manage approvals
RUOLO_COMMERCIALE = 'commerciale'
RUOLO_MANAGER = 'manager'
RUOLO_OWNER = 'owner'
USER_ROLES = (RUOLO_COMMERCIALE, RUOLO_MANAGER, RUOLO_OWNER)


@dataclass
class Client:
    """Company record with proposal and contract-tracking fields"""
    id: Optional[str] = None
    nome_azienda: str = ''
    figura_preposta: str = ''
    contatti: str = ''
    indirizzo_mail: str = ''
    data_invio_proposta: Optional[date] = None
    proposta_presentata: Optional[str] = None
    tipologia_proposta: Optional[str] = None
    frequenza: Optional[str] = None
    valore_mensile: Optional[Decimal] = None
    valore_spot: Optional[Decimal] = None
    stato_trattativa: str = STATO_IN_CORSO
    data_fine: Optional[date] = None
    giorni_gestazione: Optional[int] = None
    durata: Optional[str] = None
    fine_lavori: Optional[str] = None
    estensione: Optional[str] = None
    # Contract expiration tracking
    data_inizio_contratto: Optional[date] = None
    data_scadenza_contratto: Optional[date] = None
    durata_contratto_mesi: Optional[int] = None
    rinnovo_automatico: bool = False
    notifiche_attive: bool = True
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Deal:
    """Sales opportunity, belongs to one client"""
    id: Optional[str] = None
    client_id: Optional[str] = None
    oggetto_trattativa: str = ''
    valore_stimato: Decimal = Decimal('0')
    data_apertura: Optional[date] = None
    stato_trattativa: str = STATO_IN_CORSO
    scadenza_prossimo_contatto: Optional[date] = None
    note: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    client: Optional[Client] = None


@dataclass
class Activity:
    """Call / email / meeting logged against a client or deal"""
    id: Optional[str] = None
    tipo_attivita: str = 'call'
    data_ora: Optional[datetime] = None
    esito: str = 'da_richiamare'
    client_id: Optional[str] = None
    deal_id: Optional[str] = None
    note: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Notification:
    """Contract-expiry reminder. One per (client_id, tipo_notifica)."""
    id: Optional[str] = None
    client_id: Optional[str] = None
    nome_azienda: Optional[str] = None
    tipo_notifica: str = SCADENZA_45
    data_notifica: Optional[date] = None
    data_scadenza_contratto: Optional[date] = None
    messaggio: str = ''
    giorni_rimanenti: Optional[int] = None
    letta: bool = False
    inviata: bool = False
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Project:
    """Delivery project for a client"""
    id: Optional[str] = None
    nome_progetto: str = ''
    descrizione: Optional[str] = None
    client_id: Optional[str] = None
    stato: str = 'pianificazione'
    priorita: str = 'media'
    data_inizio: Optional[date] = None
    data_fine_prevista: Optional[date] = None
    data_fine_effettiva: Optional[date] = None
    budget_stimato: Optional[Decimal] = None
    budget_utilizzato: Optional[Decimal] = None
    note: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Collaborator:
    """External collaborator paid per token (gettone) or a fixed fee"""
    id: Optional[str] = None
    nome: str = ''
    cognome: str = ''
    email: str = ''
    telefono: Optional[str] = None
    ruolo_principale: str = 'altro'
    tipo_compenso: str = 'gettone'
    compenso_per_gettone: Optional[Decimal] = None
    compenso_fisso: Optional[Decimal] = None
    gettoni_disponibili: int = 0
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ProjectAssignment:
    """A collaborator's token allocation on one project"""
    id: Optional[str] = None
    project_id: Optional[str] = None
    collaborator_id: Optional[str] = None
    ruolo_progetto: str = 'altro'
    gettoni_assegnati: int = 0
    gettoni_utilizzati: int = 0
    data_assegnazione: Optional[date] = None
    note: Optional[str] = None


@dataclass
class CurrentUser:
    """The signed-in account"""
    id: str = ''
    email: str = ''
    nome: str = ''
    cognome: str = ''
    ruolo: str = RUOLO_COMMERCIALE
    approved: bool = False
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


# =============================================================================
# DERIVED RECORDS (never persisted)
# =============================================================================

@dataclass
class NotificationCounts:
    pending: int = 0
    expiring_soon: int = 0


@dataclass
class ClientRevenue:
    nome_azienda: str
    total_revenue: Decimal


@dataclass
class ClientContractDuration:
    nome_azienda: str
    contract_duration_months: int


@dataclass
class BestMonth:
    month: str
    deals_count: int
    total_value: Decimal


@dataclass
class BestDay:
    date: str
    deals_count: int


@dataclass
class BiggestDeal:
    oggetto_trattativa: str
    valore_stimato: Decimal
    client_name: str


@dataclass
class SalesPerformance:
    best_month: Optional[BestMonth]
    best_day: Optional[BestDay]
    biggest_deal: BiggestDeal


@dataclass
class DashboardStats:
    total_clients: int = 0
    active_deals: int = 0
    won_deals: int = 0
    lost_deals: int = 0
    total_deal_value: Decimal = Decimal('0')
    this_week_activities: int = 0
    pending_notifications: int = 0
    contracts_expiring_soon: int = 0
    best_client_by_revenue: Optional[ClientRevenue] = None
    best_client_by_contract_duration: Optional[ClientContractDuration] = None
    best_sales_performance: Optional[SalesPerformance] = None


@dataclass
class RevenueBucket:
    """One period of a revenue series (month 'YYYY-MM' or quarter 'Q1 2025')"""
    label: str
    revenue: Decimal


@dataclass
class ClientRevenueRow:
    client: str
    revenue: Decimal
    deals: int

    @property
    def average(self) -> Decimal:
        return self.revenue / self.deals if self.deals else Decimal('0')


@dataclass
class TokenAllocation:
    """Token budget of one collaborator across all project assignments"""
    collaborator_id: Optional[str]
    disponibili: int
    assegnati: int
    utilizzati: int
    projects: List[str] = field(default_factory=list)

    @property
    def residui(self) -> int:
        """Tokens assigned but not yet used"""
        return self.assegnati - self.utilizzati

    @property
    def liberi(self) -> int:
        """Tokens not yet assigned to any project"""
        return self.disponibili - self.assegnati
