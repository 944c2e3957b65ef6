# galenique/adapters/cli.py
"""
CLI de l'assistant de préparation (Typer).

Commandes principales :
- migrate                      -> applique les migrations
- params set/get/show          -> gère les paramètres globaux (capacité, marge, recherche)
- drugs                        -> liste les molécules et tailles de gélules
- calc <molécule>              -> calcule une ligne de préparation
- lots <total>                 -> propose une répartition en lots (bicarbonate)
- prep-file <json>             -> enregistre une visite décrite dans un fichier JSON
- patients list/show           -> consulte la base patients
- planning suggest/add/delete/list/day -> planning des renouvellements
- rel production/dashboard     -> rapports
- export-history <xlsx>        -> exporte l'historique en XLSX
- logs [journal]               -> affiche la fin d'un journal
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from galenique.config import DB_PATH, DEFAULTS, PARAM_KEYS
from galenique.domain.catalog import CAPSULE_TYPES, DRUG_MASTER, PREPARATORS, drug_label
from galenique.domain.exceptions import GaleniqueError
from galenique.domain.models import BicarbResult, PowderResult, TabletResult
from galenique.domain.policies import suggest_lots
from galenique.infra.migrations import apply_migrations
from galenique.infra.repositories import ParamsRepo, PatientRepo
from galenique.infra.logger import LOG_FILES, get_log_summary, log_file_operation
from galenique.adapters.parsers import parse_int
from galenique.adapters.xlsx_export import export_history_xlsx
from galenique.usecases.preparation_form import PreparationForm
from galenique.usecases.record_preparation import run_visit_file
from galenique.usecases.schedule_renewal import (
    book_appointment,
    cancel_appointment,
    day_view,
    list_appointments,
    suggest_renewal,
)
from galenique.usecases.reports import report_dashboard, report_production


app = typer.Typer(help="Galénique — assistant de préparation des gélules")
console = Console()


# -----------------------
# util
# -----------------------

def _plain(obj: Any) -> Any:
    """Convertit dataclasses / enums en structures JSON."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return _plain(asdict(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    return obj


def _print_json(obj) -> None:
    typer.echo(json.dumps(_plain(obj), ensure_ascii=False, indent=2))


def _fmt(val: Any, digits: int = 2) -> str:
    if val is None:
        return "-"
    if isinstance(val, float):
        return f"{val:,.{digits}f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return str(val)


def _fail(e: Exception) -> None:
    console.print(Panel(str(e), title="Refusé", border_style="red"))
    raise typer.Exit(code=1)


def _display_rows(rows: List[Dict[str, Any]], title: str) -> None:
    """Affiche une liste de dicts dans une table Rich."""
    if not rows:
        console.print(Panel("Aucune donnée", title=title, border_style="yellow"))
        return
    table = Table(title=title, box=box.ROUNDED)
    columns = list(rows[0].keys())
    for col in columns:
        numeric = isinstance(rows[0].get(col), (int, float)) and not isinstance(rows[0].get(col), bool)
        table.add_column(col, justify="right" if numeric else "left")
    for row in rows:
        table.add_row(*[_fmt(row.get(c)) for c in columns])
    console.print(table)


# -----------------------
# infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite")):
    """Applique les migrations."""
    apply_migrations(db_path)
    typer.echo(f">> Migrations appliquées sur : {db_path}")


params_app = typer.Typer(help="Paramètres globaux (capacité journalière, marge, recherche).")
app.add_typer(params_app, name="params")


@params_app.command("set")
def cmd_params_set(
    max_capacity: Optional[int] = typer.Option(None, help="Rendez-vous max par jour (ex.: 6)"),
    safety_buffer_days: Optional[int] = typer.Option(None, help="Jours de marge avant la fin du traitement (ex.: 2)"),
    max_search_attempts: Optional[int] = typer.Option(None, help="Jours examinés en arrière (ex.: 30)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Définit les paramètres (seuls ceux fournis changent)."""
    apply_migrations(db_path)
    items = [
        (k, str(v))
        for k, v in (
            ("max_capacity", max_capacity),
            ("safety_buffer_days", safety_buffer_days),
            ("max_search_attempts", max_search_attempts),
        )
        if v is not None
    ]
    if not items:
        typer.echo("Rien à modifier. Indiquez au moins un paramètre.")
        raise typer.Exit(code=1)
    ParamsRepo(db_path).set_many(items)
    typer.echo(">> Paramètres mis à jour.")


@params_app.command("get")
def cmd_params_get(
    key: str = typer.Argument(..., help="max_capacity | safety_buffer_days | max_search_attempts"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Affiche un paramètre."""
    apply_migrations(db_path)
    val = ParamsRepo(db_path).get(key)
    typer.echo("(None)" if val is None else val)


@params_app.command("show")
def cmd_params_show(
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Affiche les paramètres effectifs (repli sur les valeurs par défaut)."""
    apply_migrations(db_path)
    repo = ParamsRepo(db_path)
    out = {k: repo.get_int(k, getattr(DEFAULTS, k)) for k in PARAM_KEYS}
    if as_json:
        _print_json(out)
        return
    table = Table(title="Paramètres du système")
    table.add_column("Paramètre")
    table.add_column("Valeur actuelle", justify="right")
    table.add_column("Défaut", justify="right")
    for k in PARAM_KEYS:
        table.add_row(k, str(out[k]), str(getattr(DEFAULTS, k)))
    console.print(table)
    console.print(f"[dim]Base : {db_path}[/dim]")


# -----------------------
# calcul
# -----------------------

@app.command("drugs")
def cmd_drugs():
    """Liste les molécules, les tailles de gélules et l'équipe."""
    table = Table(title="Molécules", box=box.ROUNDED)
    for col in ("clé", "libellé", "type", "mg/cp", "sécabilité"):
        table.add_column(col)
    for key, d in DRUG_MASTER.items():
        table.add_row(key, drug_label(key), d.kind.value, _fmt(float(d.source_unit_mg)), str(d.secability_step))
    console.print(table)
    caps = Table(title="Gélules", box=box.ROUNDED)
    caps.add_column("taille")
    caps.add_column("libellé")
    caps.add_column("volume (ml)", justify="right")
    for key, c in CAPSULE_TYPES.items():
        caps.add_row(key, c.label, _fmt(c.fill_volume_ml))
    console.print(caps)
    console.print(Panel("\n".join(PREPARATORS), title="Équipe de préparation"))


@app.command("calc")
def cmd_calc(
    drug: str = typer.Argument(..., help="Clé de la molécule (voir `drugs`)"),
    dose: Optional[str] = typer.Option(None, help="Dose par gélule (mg)"),
    units: Optional[str] = typer.Option(None, help="Nombre total de gélules"),
    frequency: Optional[str] = typer.Option(None, "--freq", help="Prises par jour"),
    duration: Optional[str] = typer.Option(None, help="Durée (jours)"),
    capsule: str = typer.Option(DEFAULTS.default_capsule, help="Taille de gélule (T0..T4)"),
    forced_tabs: Optional[float] = typer.Option(None, "--forced-tabs", help="Nombre de comprimés imposé"),
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
):
    """Calcule les quantités d'une ligne de préparation."""
    form = PreparationForm.from_dict({
        "drug": drug, "dose": dose, "frequency": frequency, "duration": duration,
        "units": units, "capsule": capsule, "forced_tabs": forced_tabs,
    })
    res = form.result()
    if as_json:
        _print_json({"total_units": parse_int(form.total_units), "result": res, "lots": form.lot_details()})
        return
    if res is None:
        console.print(Panel("Saisie incomplète : dose, total de gélules, molécule et taille requis.",
                            title="Calcul", border_style="yellow"))
        raise typer.Exit(code=1)

    table = Table(title=f"{drug_label(drug)} — {form.total_units} gélules ({res.capsule_label})", box=box.ROUNDED)
    table.add_column("Grandeur")
    table.add_column("Valeur", justify="right")
    if isinstance(res, TabletResult):
        table.add_row("Comprimés", _fmt(res.final_tablet_count))
        table.add_row("Dose réelle (mg/gél)", _fmt(res.real_dose_mg))
        table.add_row("Écart", f"{res.diff_percent:+.1f}%")
        table.add_row("Excipient QSP (ml)", _fmt(res.excipient_volume_ml))
        console.print(table)
        opt = Table(title="Optimiseur", box=box.ROUNDED)
        for col in ("comprimés", "dose (mg)", "écart"):
            opt.add_column(col, justify="right")
        for o in res.options:
            opt.add_row(_fmt(o.tablets), _fmt(o.dose_mg), f"{o.diff_percent:+.1f}%")
        console.print(opt)
    elif isinstance(res, PowderResult):
        table.add_row("Masse à peser (g)", _fmt(res.total_mass_g))
        table.add_row("Dose (mg/gél)", _fmt(res.real_dose_mg))
        table.add_row("Excipient QSP (ml)", _fmt(res.excipient_volume_ml))
        console.print(table)
    elif isinstance(res, BicarbResult):
        table.add_row("Gélules par prise", str(res.capsules_per_intake))
        table.add_row("Contenu (mg/gél)", _fmt(res.content_per_capsule_mg))
        table.add_row("Volume (ml/gél)", _fmt(res.fill_volume_per_capsule_ml))
        console.print(table)
        rows = [
            {"lot": d["index"], "gélules": d["units"], "masse (g)": d["mass_g"],
             "QSP (ml)": d["volume_ml"], "alerte": "> 100" if d["over_limit"] else ""}
            for d in form.lot_details()
        ]
        _display_rows(rows, "Lots")


@app.command("lots")
def cmd_lots(
    total: int = typer.Argument(..., help="Nombre total de gélules"),
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
):
    """Propose les répartitions « maximiser » et « équilibrée »."""
    sug = suggest_lots(total, DEFAULTS.lot_capacity)
    if sug is None:
        _fail(GaleniqueError("Le total doit être positif."))
    if as_json:
        _print_json(sug)
        return
    console.print(f"Maximiser 100 : ({'/'.join(map(str, sug.maximize))})")
    if not sug.identical:
        console.print(f"Équilibré : ({'/'.join(map(str, sug.balanced))})")


# -----------------------
# visites / patients
# -----------------------

@app.command("prep-file")
def cmd_prep_file(
    path: str = typer.Argument(..., help="Fichier JSON de visite"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Enregistre une visite décrite dans un fichier JSON."""
    try:
        patient = run_visit_file(path, db_path=db_path)
    except GaleniqueError as e:
        _fail(e)
    last = patient.latest_log()
    typer.echo(f">> Visite enregistrée pour {patient.name} ({len(last.preps)} ligne(s)).")


patients_app = typer.Typer(help="Base patients")
app.add_typer(patients_app, name="patients")


@patients_app.command("list")
def cmd_patients_list(
    search: Optional[str] = typer.Option(None, help="Fragment du nom"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Liste les patients (filtre optionnel sur le nom)."""
    apply_migrations(db_path)
    repo = PatientRepo(db_path)
    patients = repo.search(search) if search else repo.get_all()
    rows = [
        {"nom": p.name, "téléphone": p.phone or "", "âge": p.age, "poids": p.weight,
         "visites": len(p.history)}
        for p in patients
    ]
    _display_rows(rows, "Patients")


@patients_app.command("show")
def cmd_patients_show(
    name: str = typer.Argument(..., help="Nom du patient"),
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Affiche l'historique d'un patient (visite la plus récente en premier)."""
    apply_migrations(db_path)
    patient = PatientRepo(db_path).find_by_name(name)
    if patient is None:
        console.print(Panel(f"Patient introuvable : {name}", border_style="yellow"))
        raise typer.Exit(code=1)
    if as_json:
        _print_json(patient)
        return
    console.print(Panel(
        f"Téléphone : {patient.phone or '-'}\nÂge : {_fmt(patient.age)}\nPoids : {_fmt(patient.weight)}",
        title=patient.name,
    ))
    for h in sorted(patient.history, key=lambda h: h.timestamp, reverse=True):
        rows = [
            {"molécule": p.molecule, "statut": "OK" if p.feasible else f"NON ({p.reason})",
             "gélules": p.total_units, "dose réelle": p.real_dose_per_unit_mg,
             "comprimés": p.final_tablet_count, "masse (g)": p.total_powder_mass_g,
             "durée": p.duration_days}
            for p in h.preps
        ]
        _display_rows(rows, f"{h.date} — Dr {h.doctor or '?'} — {', '.join(h.preparator_names)}")


# -----------------------
# planning
# -----------------------

planning_app = typer.Typer(help="Planning des renouvellements")
app.add_typer(planning_app, name="planning")


@planning_app.command("suggest")
def cmd_planning_suggest(
    name: str = typer.Argument(..., help="Nom du patient"),
    book: bool = typer.Option(False, "--book", help="Confirme le rendez-vous suggéré"),
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Propose une date de renouvellement (et la réserve avec --book)."""
    try:
        info = suggest_renewal(name, db_path=db_path)
        sug = info["suggestion"]
        appt = None
        if book:
            appt = book_appointment(info["patient"], sug.suggested_date, info["molecule"], db_path=db_path)
    except GaleniqueError as e:
        _fail(e)
    if as_json:
        _print_json({**info, "appointment": appt})
        return
    color = "green" if sug.is_ideal else "yellow"
    console.print(Panel(
        f"Date idéale : {sug.ideal_date}\nDate proposée : {sug.suggested_date}\n"
        f"Places restantes : {sug.slots_left}",
        title=f"{info['patient']} — {info['molecule']}", border_style=color,
    ))
    if appt is not None:
        typer.echo(f">> Rendez-vous confirmé pour le {appt.date} (id {appt.id}).")


@planning_app.command("add")
def cmd_planning_add(
    name: str = typer.Argument(..., help="Nom du patient"),
    date: str = typer.Argument(..., help="AAAA-MM-JJ"),
    molecule: str = typer.Option("", help="Molécule ou téléphone (texte libre)"),
    status: str = typer.Option("confirmed", help="confirmed | pending"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Ajoute un rendez-vous manuel (refusé si complet ou fermé)."""
    try:
        appt = book_appointment(name, date, molecule, status, db_path=db_path)
    except GaleniqueError as e:
        _fail(e)
    typer.echo(f">> Rendez-vous ajouté : {appt.date} (id {appt.id}).")


@planning_app.command("delete")
def cmd_planning_delete(
    appointment_id: str = typer.Argument(..., help="Id du rendez-vous"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Supprime un rendez-vous."""
    found = cancel_appointment(appointment_id, db_path=db_path)
    typer.echo(">> Rendez-vous supprimé." if found else ">> Aucun rendez-vous avec cet id.")


@planning_app.command("list")
def cmd_planning_list(
    date: Optional[str] = typer.Option(None, help="AAAA-MM-JJ"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Liste les rendez-vous (tous ou d'un jour)."""
    try:
        appts = list_appointments(date, db_path=db_path)
    except GaleniqueError as e:
        _fail(e)
    rows = [
        {"id": a.id, "date": a.date, "patient": a.patient_name, "statut": a.status, "note": a.molecule}
        for a in appts
    ]
    _display_rows(rows, "Rendez-vous")


@planning_app.command("day")
def cmd_planning_day(
    date: str = typer.Argument(..., help="AAAA-MM-JJ"),
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """État d'un jour : compteur, fermeture, rendez-vous."""
    try:
        view = day_view(date, db_path=db_path)
    except GaleniqueError as e:
        _fail(e)
    if as_json:
        _print_json(view)
        return
    state = "FERMÉ" if view["closed"] else ("COMPLET" if view["full"] else "OUVERT")
    if view["holiday"]:
        state += f" ({view['holiday']})"
    console.print(f"{view['date']} — {state} — {view['count']}/{view['max_capacity']}")
    _display_rows(
        [{"id": a.id, "patient": a.patient_name, "note": a.molecule} for a in view["appointments"]],
        "Rendez-vous du jour",
    )


# -----------------------
# rapports
# -----------------------

rel_app = typer.Typer(help="Rapports")
app.add_typer(rel_app, name="rel")


@rel_app.command("production")
def rel_production(
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Statistiques de production du mois en cours."""
    res = report_production(db_path=db_path)
    if as_json:
        _print_json(res)
        return
    console.print(Panel(
        f"Gélules : {res['total_capsules']}\nPréparations : {res['total_preps']}\n"
        f"Patients : {res['unique_patients']}\nJours travaillés : {res['working_days']}\n"
        f"Cadence : {res['cadence']} gél/j\nRendement : {res['patient_yield']} patients/j\n"
        f"Excipient : {_fmt(res['total_excipient_mass_g'])} g ({res['excipient_flow_g']} g/j)",
        title=f"Production — {res['month_label']}",
    ))
    _display_rows([{"molécule": m, "préparations": n} for m, n in res["top_molecules"]], "Top molécules")


@rel_app.command("dashboard")
def rel_dashboard(
    as_json: bool = typer.Option(False, "--json", help="Sortie JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Tableau de bord : activité, alertes de renouvellement, prochains rendez-vous."""
    res = report_dashboard(db_path=db_path)
    if as_json:
        _print_json(res)
        return
    console.print(Panel(
        f"Patients : {res['total_patients']}\nPréparations du mois : {res['month_preps']}\n"
        f"Préparations du jour : {res['today_preps']}\nGélules du mois : {res['month_capsules']}",
        title="Tableau de bord",
    ))
    _display_rows(
        [{"patient": a["patient"], "molécule": a["molecule"], "état": a["label"], "niveau": a["severity"]}
         for a in res["renewal_alerts"]],
        "Alertes de renouvellement",
    )
    _display_rows(
        [{"date": a.date, "patient": a.patient_name, "note": a.molecule} for a in res["upcoming_appointments"]],
        "Prochains rendez-vous",
    )


@app.command("export-history")
def cmd_export_history(
    path: str = typer.Argument(..., help="Fichier XLSX de sortie"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Chemin SQLite"),
):
    """Exporte l'historique des préparations en XLSX."""
    apply_migrations(db_path)
    n = export_history_xlsx(PatientRepo(db_path).get_all(), path)
    log_file_operation("export", path, rows_processed=n)
    typer.echo(f">> {n} ligne(s) exportée(s) vers {path}")


@app.command("logs")
def cmd_logs(
    log_type: str = typer.Argument("transactions", help="transactions | preparations | planning | database | system"),
    lines: int = typer.Option(20, help="Nombre de lignes"),
):
    """Affiche la fin d'un journal."""
    if log_type not in LOG_FILES:
        _fail(GaleniqueError(f"Journal inconnu : {log_type}"))
    summary = get_log_summary(log_type, lines)
    if summary is None:
        typer.echo("Journalisation désactivée (GALENIQUE_LOGGING=1 pour l'activer).")
        return
    typer.echo(summary.rstrip() or "(vide)")


def main():
    app()


if __name__ == "__main__":
    main()
