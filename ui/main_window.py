from __future__ import annotations
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QTabWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QPushButton, QFileDialog, QMessageBox, QTableWidget,
    QTableWidgetItem, QHeaderView, QDialog, QSpinBox
)
from PySide6.QtCore import Qt

from core import settings
from core.errors import SmartFretError
from core.services.dossier_service import DossierService
from core.services.export_service import ExportService
from core.services.reference_service import ORIGINES, ReferenceService
from core.services.stats_service import format_number_fr
from ui.widgets.dashboard import DashboardWidget
from ui.widgets.dossier_editor import DossierEditor

PER_PAGE = 25


class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Smart Fret - Gestion des dossiers")
        self.resize(1280, 800)

        self.references = ReferenceService()
        self.dossier_service = DossierService(references=self.references)
        self.export_service = ExportService()
        self._page = 1

        self.tabs = QTabWidget()
        self.setCentralWidget(self.tabs)

        self.dashboard = DashboardWidget(self, self.dossier_service, self.references, self.export_service)
        self.tabs.addTab(self.dashboard, "Tableau de bord")
        self.tabs.addTab(self._dossiers_tab(), "Dossiers")
        self.tabs.addTab(self._settings_tab(), "Paramètres")

    # ==================== DOSSIERS ====================
    def _dossiers_tab(self):
        w = QWidget()
        root = QVBoxLayout(w)
        bar = QHBoxLayout()
        btn_new = QPushButton("Nouveau dossier")
        btn_edit = QPushButton("Modifier")
        btn_refresh = QPushButton("Actualiser")
        self.sp_page = QSpinBox(); self.sp_page.setMinimum(1)
        self.lab_pages = QLabel("")
        bar.addWidget(btn_new); bar.addWidget(btn_edit); bar.addWidget(btn_refresh)
        bar.addStretch(1); bar.addWidget(QLabel("Page")); bar.addWidget(self.sp_page); bar.addWidget(self.lab_pages)
        root.addLayout(bar)

        self.tbl_dossiers = QTableWidget(0, 8)
        self.tbl_dossiers.setHorizontalHeaderLabels(
            ["N° Dossier", "N° BL", "Origine", "Vendeur", "Date", "TEU", "Montant CFA", "ID"]
        )
        self.tbl_dossiers.horizontalHeader().setSectionResizeMode(QHeaderView.Stretch)
        self.tbl_dossiers.setSelectionBehavior(self.tbl_dossiers.SelectionBehavior.SelectRows)
        self.tbl_dossiers.setEditTriggers(self.tbl_dossiers.EditTrigger.NoEditTriggers)
        self.tbl_dossiers.setColumnHidden(7, True)
        root.addWidget(self.tbl_dossiers, 1)

        btn_new.clicked.connect(self._dossier_new)
        btn_edit.clicked.connect(self._dossier_edit)
        btn_refresh.clicked.connect(self._refresh_dossiers)
        self.sp_page.valueChanged.connect(self._refresh_dossiers)
        self.tbl_dossiers.doubleClicked.connect(lambda _i: self._dossier_edit())

        self._refresh_dossiers()
        return w

    def _refresh_dossiers(self):
        try:
            page = self.dossier_service.list_dossiers(page=self.sp_page.value(), per_page=PER_PAGE)
        except (SmartFretError, OSError) as e:
            QMessageBox.warning(self, "Dossiers", str(e)); return
        try:
            origines = self.references.names(ORIGINES)
        except SmartFretError:
            origines = {}

        pages = max(1, -(-page.total // PER_PAGE))
        self.sp_page.blockSignals(True); self.sp_page.setMaximum(pages); self.sp_page.blockSignals(False)
        self.lab_pages.setText(f"/ {pages}  ({page.total} dossiers)")

        self.tbl_dossiers.setRowCount(0)
        for d in page.data:
            r = self.tbl_dossiers.rowCount(); self.tbl_dossiers.insertRow(r)
            self.tbl_dossiers.setItem(r, 0, QTableWidgetItem(d.numero_dossier))
            self.tbl_dossiers.setItem(r, 1, QTableWidgetItem(d.num_bl))
            self.tbl_dossiers.setItem(r, 2, QTableWidgetItem(origines.get(d.origine) or d.origine))
            self.tbl_dossiers.setItem(r, 3, QTableWidgetItem(d.vendeur))
            self.tbl_dossiers.setItem(r, 4, QTableWidgetItem(d.date))
            it_teu = QTableWidgetItem(str(int(d.nbre_teu))); it_teu.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
            self.tbl_dossiers.setItem(r, 5, it_teu)
            it_cfa = QTableWidgetItem(format_number_fr(d.montant_cfa)); it_cfa.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
            self.tbl_dossiers.setItem(r, 6, it_cfa)
            self.tbl_dossiers.setItem(r, 7, QTableWidgetItem(d.id))
        self.tbl_dossiers.resizeRowsToContents()

    def _selected_dossier_id(self):
        row = self.tbl_dossiers.currentRow()
        if row < 0: return None
        return self.tbl_dossiers.item(row, 7).text()

    def _dossier_new(self):
        dlg = DossierEditor(self, service=self.dossier_service, references=self.references)
        if dlg.exec() == QDialog.Accepted:
            self._refresh_dossiers()
            self.dashboard.reload()

    def _dossier_edit(self):
        did = self._selected_dossier_id()
        if not did:
            QMessageBox.information(self, "Dossiers", "Sélectionne un dossier."); return
        dlg = DossierEditor(self, dossier_id=did, service=self.dossier_service, references=self.references)
        if dlg.exec() == QDialog.Accepted:
            self._refresh_dossiers()
            self.dashboard.reload()

    # ==================== PARAMÈTRES ====================
    def _settings_tab(self):
        w = QWidget(); lay = QVBoxLayout(w)
        data_dir = settings.data_dir()
        lay.addWidget(QLabel(f"Paramètres: {settings.settings_path()}"))
        lay.addWidget(QLabel(f"Exports: {self.export_service.out_dir}"))
        lay.addWidget(QLabel(f"Utilisateur: {settings.current_username() or '—'}"))
        btn_open = QPushButton("Ouvrir dossier data…")
        btn_open.clicked.connect(lambda: QFileDialog.getOpenFileName(self, "Ouvrir un fichier", str(data_dir)))
        btn_refs = QPushButton("Recharger les listes de référence")
        btn_refs.clicked.connect(self._reload_references)
        lay.addWidget(btn_open)
        lay.addWidget(btn_refs)
        lay.addStretch(1)
        return w

    def _reload_references(self):
        self.references.refresh()
        self.dashboard.reload()
        self._refresh_dossiers()
