from __future__ import annotations
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QFormLayout, QGridLayout, QWidget, QTabWidget,
    QLineEdit, QComboBox, QLabel, QPushButton, QTableWidget, QTableWidgetItem,
    QHeaderView, QDialogButtonBox, QMessageBox, QScrollArea,
)
from PySide6.QtCore import Qt

from core.errors import DossierValidationError, ReferenceLoadError, SmartFretError
from core.models.common import to_number
from core.models.dossier import DETAIL_BLOCKS, Dossier
from core.models.reference import ReferenceItem, normalize_ref
from core.services.derived import DossierFormState
from core.services.dossier_service import DossierService
from core.services.load_guard import LoadGuard
from core.services.reference_service import (
    ARMATEURS, KINDS, NAVIRES, ORIGINES, TYPES, ReferenceService,
)
from core.services.stats_service import format_number_fr
from ui.widgets.detail_admin_form import DetailAdminForm, num_text
from ui.widgets.reglement_dialog import ReglementDialog
from ui.workers import run_load

logger = logging.getLogger(__name__)

ERROR_STYLE = "color: #dc2626; font-size: 11px;"

# (attribut, libellé)
GENERAL_FIELDS: List[Tuple[str, str]] = [
    ("numero_dossier", "N° Dossier *"),
    ("num_fri", "N° FRI"),
    ("num_bsc", "N° BSC"),
    ("montant_bsc", "Montant BSC"),
    ("num_bl", "N° BL"),
    ("date", "Date"),
    ("date_eta", "Date ETA"),
    ("num_facture_vendeur", "N° Facture vendeur"),
    ("date_facture_vendeur", "Date facture vendeur"),
    ("montant_facture", "Montant facture"),
    ("devise", "Devise"),
    ("cours", "Cours"),
    ("montant_cfa", "Montant CFA"),
    ("montant_assurance", "Montant assurance"),
    ("incoterm", "Incoterm"),
    ("qte", "Quantité"),
    ("vendeur", "Vendeur"),
]

TRANSIT_FIELDS: List[Tuple[str, str]] = [
    ("nom_transit", "Transitaire"),
    ("num_facture_transit", "N° Facture transit"),
    ("date_facture_transit", "Date facture transit"),
    ("montant_transit", "Montant transit"),
    ("droit_douane", "Droit de douane"),
    ("droit_d_taxe", "Droit de taxe"),
    ("montant_tva_douane", "TVA douane"),
    ("montant_ts_douane", "TS douane"),
    ("frais_phyto", "Frais phyto"),
    ("frais_depotage", "Frais dépotage"),
    ("num_cc_transit", "N° CC transit"),
    ("num_dos_tran", "N° Dossier transit"),
    ("num_declarant", "N° Déclarant"),
    ("date_declarant", "Date déclarant"),
    ("montant_tva_fact_trans", "TVA facture transit"),
    ("montant_tva_interv", "TVA intervention"),
]

REF_FIELDS: List[Tuple[str, str, str]] = [
    ("origine", ORIGINES, "Origine"),
    ("armateur", ARMATEURS, "Armateur"),
    ("navire", NAVIRES, "Navire"),
    ("type", TYPES, "Type de dossier"),
]

# colonnes des collections : (attribut, en-tête, numérique)
ITEM_COLUMNS = [("quantite", "Quantité", True), ("designation", "Désignation", False), ("fob", "FOB", True)]
PRIX_COLUMNS = [
    ("designation", "Désignation", False), ("quantite", "Quantité", True), ("fob", "FOB", True),
    ("cfa", "CFA", True), ("percentage", "%", True), ("prix_revient", "Prix de revient", True),
]
REGLEMENT_COLUMNS = [
    ("date", "Date", False), ("reference", "Référence", False), ("mode_paiement", "Mode", False),
    ("banque", "Banque", False), ("montant_devise", "Montant devise", True), ("devise", "Devise", False),
    ("cours_devise", "Cours", True), ("montant_cfa", "Montant CFA", True),
    ("montant_tps", "TPS", True), ("frais_bancaires", "Frais bancaires", True),
]
TEU_COLUMNS = [("numero", "N° Conteneur", False)]


def _error_label() -> QLabel:
    lab = QLabel("")
    lab.setStyleSheet(ERROR_STYLE)
    lab.setVisible(False)
    return lab


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return num_text(value)
    return str(value)


class DossierEditor(QDialog):
    """
    Création / édition d'un dossier.
    Toutes les mutations passent par DossierFormState (nbreTEU et montants CFA recalculés).
    """

    def __init__(self, parent=None, dossier_id: Optional[str] = None,
                 service: Optional[DossierService] = None,
                 references: Optional[ReferenceService] = None):
        super().__init__(parent)
        self.setWindowTitle("Modifier le dossier" if dossier_id else "Nouveau dossier")
        self.setModal(True)
        self.resize(1100, 760)

        self.references = references or ReferenceService()
        self.service = service or DossierService(references=self.references)
        self.dossier_id = dossier_id
        self.state = DossierFormState()

        self._guard = LoadGuard()
        self._tasks: list = []
        self._inputs: Dict[str, QLineEdit] = {}
        self._errors: Dict[str, QLabel] = {}
        self._combos: Dict[str, QComboBox] = {}
        self._options: Dict[str, List[ReferenceItem]] = {}
        self._details: Dict[str, DetailAdminForm] = {}

        tabs = QTabWidget()
        tabs.addTab(self._general_tab(), "Général")
        tabs.addTab(self._collection_tab("items", ITEM_COLUMNS, self._add_item), "Articles")
        tabs.addTab(self._collection_tab("prix_reviens", PRIX_COLUMNS, self._add_prix), "Prix de revient")
        tabs.addTab(self._form_tab(TRANSIT_FIELDS), "Transit / Douane")
        tabs.addTab(self._details_tab(), "Détails administratifs")
        tabs.addTab(self._collection_tab("reglements", REGLEMENT_COLUMNS, self._add_reglement), "Règlements")
        tabs.addTab(self._collection_tab("teus", TEU_COLUMNS, self._add_teu), "Conteneurs")

        self.lab_loading = QLabel("")
        self.btns = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        self.btns.accepted.connect(self._save)
        self.btns.rejected.connect(self.reject)

        lay = QVBoxLayout(self)
        lay.addWidget(self.lab_loading)
        lay.addWidget(tabs, 1)
        lay.addWidget(self.btns)

        self._load_references()
        if dossier_id:
            self._load_dossier(dossier_id)
        else:
            self._fill_from_state()

    # ==================== construction ====================
    def _field(self, form: QFormLayout, name: str, label: str):
        ed = QLineEdit()
        err = _error_label()
        box = QWidget(); v = QVBoxLayout(box); v.setContentsMargins(0, 0, 0, 0); v.setSpacing(1)
        v.addWidget(ed); v.addWidget(err)
        form.addRow(label, box)
        self._inputs[name] = ed
        self._errors[Dossier.field_alias(name)] = err
        ed.editingFinished.connect(lambda n=name: self._on_field_edited(n))

    def _general_tab(self):
        w = QWidget()
        grid = QGridLayout(w)
        left, right = QFormLayout(), QFormLayout()
        half = (len(GENERAL_FIELDS) + 1) // 2
        for name, label in GENERAL_FIELDS[:half]:
            self._field(left, name, label)
        for name, label in GENERAL_FIELDS[half:]:
            self._field(right, name, label)

        for name, kind, label in REF_FIELDS:
            cb = QComboBox()
            cb.addItem("Chargement…", None)
            err = _error_label()
            box = QWidget(); v = QVBoxLayout(box); v.setContentsMargins(0, 0, 0, 0); v.setSpacing(1)
            v.addWidget(cb); v.addWidget(err)
            left.addRow(label, box)
            self._combos[name] = cb
            self._errors[name] = err
            cb.activated.connect(lambda _i, n=name: self._on_combo_changed(n))

        self.lab_nbre_teu = QLabel("0")
        right.addRow("Nombre de TEU", self.lab_nbre_teu)

        grid.addLayout(left, 0, 0)
        grid.addLayout(right, 0, 1)
        grid.setRowStretch(1, 1)
        return w

    def _form_tab(self, fields: Sequence[Tuple[str, str]]):
        w = QWidget()
        form = QFormLayout(w)
        for name, label in fields:
            self._field(form, name, label)
        return w

    def _details_tab(self):
        inner = QWidget()
        grid = QGridLayout(inner)
        for i, (key, title) in enumerate(DETAIL_BLOCKS.items()):
            form = DetailAdminForm(title)
            self._details[key] = form
            grid.addWidget(form, i // 2, i % 2)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(inner)
        return scroll

    def _collection_tab(self, attr: str, columns, on_add):
        w = QWidget()
        lay = QVBoxLayout(w)
        tbl = QTableWidget(0, len(columns))
        tbl.setHorizontalHeaderLabels([c[1] for c in columns])
        tbl.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        tbl.setSelectionBehavior(tbl.SelectionBehavior.SelectRows)
        tbl.cellChanged.connect(lambda r, c, a=attr, cols=columns: self._on_cell_changed(a, cols, r, c))
        setattr(self, f"tbl_{attr}", tbl)

        btn_add = QPushButton("Ajouter")
        btn_del = QPushButton("Supprimer la ligne")
        btn_add.clicked.connect(on_add)
        btn_del.clicked.connect(lambda _=False, a=attr: self._remove_row(a))
        bar = QHBoxLayout(); bar.addWidget(btn_add); bar.addWidget(btn_del); bar.addStretch(1)
        if attr == "reglements":
            self.lab_total_cfa = QLabel("")
            bar.addWidget(self.lab_total_cfa)
        if attr == "teus":
            self.lab_teu_count = QLabel("")
            bar.addWidget(self.lab_teu_count)

        err = _error_label()
        self._errors[Dossier.field_alias(attr)] = err

        lay.addLayout(bar)
        lay.addWidget(tbl, 1)
        lay.addWidget(err)
        return w

    # ==================== chargements ====================
    def _load_references(self):
        for name, kind, _label in REF_FIELDS:
            task = run_load(
                self._guard,
                lambda k=kind: self.references.get(k),
                lambda items, n=name, k=kind: self._on_refs_loaded(n, k, items),
                lambda e, n=name: self._on_refs_failed(n, e),
            )
            self._tasks.append(task)

    def _safe_refs(self) -> Dict[str, List[ReferenceItem]]:
        refs: Dict[str, List[ReferenceItem]] = {}
        for kind in KINDS:
            try:
                refs[kind] = self.references.get(kind)
            except ReferenceLoadError:
                continue
        return refs

    def _load_dossier(self, dossier_id: str):
        self.lab_loading.setText("Chargement du dossier…")
        self.btns.button(QDialogButtonBox.Save).setEnabled(False)
        task = run_load(
            self._guard,
            lambda: self.service.get_dossier(dossier_id, refs=self._safe_refs()),
            self._on_dossier_loaded,
            self._on_dossier_failed,
        )
        self._tasks.append(task)

    def _on_dossier_loaded(self, dossier: Dossier):
        self.state = DossierFormState(dossier)
        self.lab_loading.setText("")
        self.btns.button(QDialogButtonBox.Save).setEnabled(True)
        self._fill_from_state()

    def _on_dossier_failed(self, err: Exception):
        msg = str(err) if isinstance(err, SmartFretError) else ""
        QMessageBox.warning(self, "Erreur", msg or "Erreur lors du chargement du dossier")
        self.reject()

    def _on_refs_loaded(self, name: str, kind: str, items: List[ReferenceItem]):
        self._options[kind] = list(items)
        current = getattr(self.state.dossier, name)
        resolved = normalize_ref(current, items)
        if resolved != current:
            self.state.set_field(name, resolved)
        self._fill_combo(name, kind)

    def _on_refs_failed(self, name: str, err: Exception):
        cb = self._combos[name]
        cb.clear()
        cb.addItem(str(err) if isinstance(err, ReferenceLoadError) else "Erreur de chargement", None)
        cb.model().item(0).setEnabled(False)

    def _fill_combo(self, name: str, kind: str):
        cb = self._combos[name]
        items = self._options.get(kind)
        if items is None:
            return
        cb.blockSignals(True)
        cb.clear()
        cb.addItem("—", "")
        for it in items:
            cb.addItem(getattr(it, "display_name", it.name) or it.id, it.id)
        current = getattr(self.state.dossier, name)
        idx = cb.findData(current)
        if idx < 0 and current:
            # libellé inconnu des listes : conservé tel quel
            cb.addItem(current, current)
            idx = cb.count() - 1
        cb.setCurrentIndex(max(0, idx))
        cb.blockSignals(False)

    # ==================== remplissage ====================
    def _fill_from_state(self):
        d = self.state.dossier
        for name, ed in self._inputs.items():
            ed.setText(_cell_text(getattr(d, name)))
        for key, form in self._details.items():
            form.set_detail(getattr(d, key))
        for name, kind, _ in REF_FIELDS:
            self._fill_combo(name, kind)
        for attr, cols in (("items", ITEM_COLUMNS), ("prix_reviens", PRIX_COLUMNS),
                           ("reglements", REGLEMENT_COLUMNS), ("teus", TEU_COLUMNS)):
            self._refresh_table(attr, cols)
        self._show_errors()

    def _refresh_table(self, attr: str, columns):
        tbl: QTableWidget = getattr(self, f"tbl_{attr}")
        rows = getattr(self.state.dossier, attr)
        tbl.blockSignals(True)
        tbl.setRowCount(0)
        for row in rows:
            r = tbl.rowCount(); tbl.insertRow(r)
            for c, (name, _h, _num) in enumerate(columns):
                it = QTableWidgetItem(_cell_text(getattr(row, name)))
                if c == 0:
                    it.setData(Qt.UserRole, row.id)
                if name == "montant_cfa":
                    it.setFlags(it.flags() & ~Qt.ItemIsEditable)
                tbl.setItem(r, c, it)
        tbl.resizeRowsToContents()
        tbl.blockSignals(False)
        self._refresh_counters()

    def _refresh_counters(self):
        d = self.state.dossier
        self.lab_nbre_teu.setText(str(int(d.nbre_teu)))
        self.lab_teu_count.setText(f"Nombre de TEU : {int(d.nbre_teu)}")
        total_cfa = sum(r.montant_cfa for r in d.reglements)
        self.lab_total_cfa.setText(f"Total CFA : {format_number_fr(total_cfa)}")

    # ==================== mutations ====================
    def _on_field_edited(self, name: str):
        self.state.set_field(name, self._inputs[name].text())
        self._errors[Dossier.field_alias(name)].setVisible(False)
        if name == "cours":
            # cascade sur les règlements sans cours propre
            self._refresh_table("reglements", REGLEMENT_COLUMNS)

    def _on_combo_changed(self, name: str):
        value = self._combos[name].currentData()
        if value is None:
            return
        self.state.set_field(name, value)
        self._errors[name].setVisible(False)

    def _row_id(self, attr: str, r: int) -> Optional[str]:
        tbl: QTableWidget = getattr(self, f"tbl_{attr}")
        it = tbl.item(r, 0)
        return it.data(Qt.UserRole) if it else None

    def _on_cell_changed(self, attr: str, columns, r: int, c: int):
        row_id = self._row_id(attr, r)
        tbl: QTableWidget = getattr(self, f"tbl_{attr}")
        name, _h, numeric = columns[c]
        text = tbl.item(r, c).text() if tbl.item(r, c) else ""

        if attr == "reglements":
            self.state.set_reglement_field(row_id, name, text)
            self._refresh_table("reglements", REGLEMENT_COLUMNS)
            return
        if attr == "teus":
            for t in self.state.dossier.teus:
                if t.id == row_id:
                    t.numero = text.strip()
            return
        for row in getattr(self.state.dossier, attr):
            if row.id == row_id:
                setattr(row, name, (to_number(text) or 0.0) if numeric else text)

    def _add_item(self):
        self.state.add_item()
        self._refresh_table("items", ITEM_COLUMNS)

    def _add_prix(self):
        self.state.add_prix_revient()
        self._refresh_table("prix_reviens", PRIX_COLUMNS)

    def _add_teu(self):
        self.state.add_teu()
        self._refresh_table("teus", TEU_COLUMNS)

    def _add_reglement(self):
        dlg = ReglementDialog(self, dossier_cours=self.state.dossier.cours)
        if dlg.exec() == QDialog.Accepted:
            self.state.add_reglement(**dlg.get_fields())
            self._refresh_table("reglements", REGLEMENT_COLUMNS)

    def _remove_row(self, attr: str):
        tbl: QTableWidget = getattr(self, f"tbl_{attr}")
        r = tbl.currentRow()
        if r < 0:
            return
        row_id = self._row_id(attr, r)
        remove = {
            "items": self.state.remove_item,
            "prix_reviens": self.state.remove_prix_revient,
            "reglements": self.state.remove_reglement,
            "teus": self.state.remove_teu,
        }[attr]
        remove(row_id)
        cols = {"items": ITEM_COLUMNS, "prix_reviens": PRIX_COLUMNS,
                "reglements": REGLEMENT_COLUMNS, "teus": TEU_COLUMNS}[attr]
        self._refresh_table(attr, cols)

    # ==================== erreurs ====================
    def _show_errors(self):
        for lab in self._errors.values():
            lab.setVisible(False)
        # erreurs de lignes ("items.0.designation") regroupées sous le tableau
        grouped: Dict[str, List[str]] = {}
        for key, messages in self.state.errors.items():
            if key in self._errors and "." not in key:
                self._errors[key].setText(", ".join(messages))
                self._errors[key].setVisible(True)
                continue
            coll, _, rest = key.partition(".")
            idx = rest.split(".", 1)[0]
            line = f"Ligne {int(idx) + 1} : " if idx.isdigit() else ""
            grouped.setdefault(coll, []).append(line + ", ".join(messages))
        for coll, lines in grouped.items():
            lab = self._errors.get(coll)
            if lab is None:
                logger.warning("Erreur sans champ associé: %s", lines)
                continue
            lab.setText("\n".join(lines))
            lab.setVisible(True)

    # ==================== enregistrement ====================
    def _collect(self) -> Dossier:
        for name, ed in self._inputs.items():
            self.state.set_field(name, ed.text())
        for key, form in self._details.items():
            setattr(self.state.dossier, key, form.get_detail())
        return self.state.dossier

    def _save(self):
        dossier = self._collect()
        self.state.clear_errors()
        try:
            if self.dossier_id:
                self.service.update_dossier(self.dossier_id, dossier)
            else:
                self.service.create_dossier(dossier)
        except DossierValidationError as e:
            self.state.apply_errors(e.errors)
            self._show_errors()
            return
        except (SmartFretError, OSError, ValueError, KeyError) as e:
            action = "la mise à jour" if self.dossier_id else "la création"
            QMessageBox.critical(self, "Erreur", str(e) or f"Erreur lors de {action} du dossier")
            return
        QMessageBox.information(
            self, "Succès",
            f"Le dossier a été {'mis à jour' if self.dossier_id else 'créé'} avec succès.",
        )
        self.accept()

    def done(self, r):
        self._guard.close()
        super().done(r)
