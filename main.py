#!/usr/bin/env python3
"""
Gestionale CRM - Interactive Menu Launcher
Every CLI command behind a numbered menu.

Usage:
    python main.py
"""

import subprocess
import sys
import os

PYTHON = sys.executable
CRM = [PYTHON, "-m", "gestcrm.cli.main"]

# Project root on PYTHONPATH so 'gestcrm' is importable without installing
ENV = os.environ.copy()
ENV["PYTHONPATH"] = os.path.dirname(os.path.abspath(__file__))


def run(args: list):
    """Run a CLI command and return to the menu when done."""
    print()
    subprocess.run(CRM + args, env=ENV)
    print()
    input("  Premi Invio per tornare al menu...")


def prompt(label: str, required: bool = True) -> str:
    """Prompt for input. Returns empty string if optional and skipped."""
    while True:
        value = input(f"  {label}: ").strip()
        if value:
            return value
        if not required:
            return ""
        print("  (obbligatorio)")


def prompt_optional(label: str) -> str:
    return prompt(f"{label} (Invio per saltare)", required=False)


def clear():
    os.system("cls" if os.name == "nt" else "clear")


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def clients_list():
    args = ["clients", "list"]
    n = prompt_optional("Nome azienda")
    s = prompt_optional("Stato (in_corso/vinta/persa/sospesa)")
    if n: args += ["--nome", n]
    if s: args += ["--stato", s]
    run(args)

def clients_show():
    run(["clients", "show", prompt("ID cliente")])

def clients_add():
    run(["clients", "add"])

def clients_tracking():
    cid = prompt("ID cliente")
    args = ["clients", "edit", cid]
    exp = prompt_optional("Nuova scadenza contratto (YYYY-MM-DD)")
    if exp: args += ["--scadenza", exp]
    on = input("  Promemoria attivi? (s/n, Invio per non cambiare): ").strip().lower()
    if on == "s": args += ["--notifiche"]
    if on == "n": args += ["--no-notifiche"]
    run(args)

def deals_list():
    args = ["deals", "list"]
    s = prompt_optional("Stato (in_corso/vinta/persa)")
    if s: args += ["--stato", s]
    run(args)

def deals_add():
    run(["deals", "add", prompt("ID cliente")])

def deals_status():
    run(["deals", "status", prompt("ID trattativa"), prompt("Nuovo stato (in_corso/vinta/persa)")])

def activities_list():
    run(["activities", "list"])

def activities_log():
    run(["activities", "log", prompt("ID cliente")])

def notifications_list():
    run(["notifications", "list"])

def notifications_read_all():
    run(["notifications", "read-all"])

def notifications_generate():
    run(["notifications", "generate"])

def projects_list():
    run(["projects", "list", "--active"])

def projects_add():
    run(["projects", "add"])

def collaborators_list():
    run(["collaborators", "list"])

def collaborators_use():
    run(["collaborators", "use", prompt("ID assegnazione"), prompt("Gettoni utilizzati")])

def dashboard():
    run(["dashboard"])

def report_revenue():
    run(["report", "revenue"])

def report_trend():
    run(["report", "trend"])

def users_pending():
    run(["users", "list", "--status", "pending"])

def users_approve():
    run(["users", "approve", prompt("ID utente")])

def export():
    kind = prompt("Cosa esportare (clients/deals/activities/revenue)")
    run(["export", kind])


# =============================================================================
# MENU LAYOUT
# =============================================================================

MENU = [
    ("CLIENTI", [
        ("Elenco clienti",               clients_list),
        ("Dettaglio cliente",            clients_show),
        ("Nuovo cliente",                clients_add),
        ("Scadenza / promemoria",        clients_tracking),
    ]),
    ("TRATTATIVE", [
        ("Elenco trattative",            deals_list),
        ("Nuova trattativa",             deals_add),
        ("Cambia stato",                 deals_status),
    ]),
    ("ATTIVITÀ", [
        ("Elenco attività",              activities_list),
        ("Registra attività",            activities_log),
    ]),
    ("PROMEMORIA", [
        ("Promemoria in attesa",         notifications_list),
        ("Segna tutti come letti",       notifications_read_all),
        ("Genera promemoria scaduti",    notifications_generate),
    ]),
    ("OPERATIONS", [
        ("Progetti attivi",              projects_list),
        ("Nuovo progetto",               projects_add),
        ("Collaboratori e gettoni",      collaborators_list),
        ("Registra gettoni utilizzati",  collaborators_use),
    ]),
    ("REPORT", [
        ("Dashboard",                    dashboard),
        ("Fatturato per cliente",        report_revenue),
        ("Andamento mensile",            report_trend),
        ("Esporta CSV",                  export),
    ]),
    ("UTENTI", [
        ("Account in attesa",            users_pending),
        ("Approva account",              users_approve),
    ]),
]


def print_menu():
    clear()
    print("=" * 50)
    print("   GESTIONALE CRM")
    print("=" * 50)

    n = 1
    numbering = {}  # display number -> handler

    for section, commands in MENU:
        print(f"\n  {section}")
        print(f"  {'-' * len(section)}")
        for label, handler in commands:
            print(f"  {n:>2}.  {label}")
            numbering[n] = handler
            n += 1

    print("\n" + "=" * 50)
    print("   0.  Esci")
    print("=" * 50)
    return numbering


def main():
    while True:
        numbering = print_menu()

        try:
            choice = input("\n  Scegli un comando: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n  Arrivederci!\n")
            break

        if choice == "0" or choice.lower() in ("q", "quit", "esci"):
            print("\n  Arrivederci!\n")
            break

        try:
            n = int(choice)
            if n in numbering:
                clear()
                numbering[n]()
            else:
                print(f"\n  Scelta non valida: {choice}")
                input("  Premi Invio per continuare...")
        except ValueError:
            print("\n  Inserisci un numero.")
            input("  Premi Invio per continuare...")


if __name__ == "__main__":
    main()
