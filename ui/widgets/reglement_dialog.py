from __future__ import annotations
from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QFormLayout, QComboBox, QDoubleSpinBox, QDialogButtonBox, QDateEdit,
    QLineEdit, QCheckBox, QLabel,
)
from PySide6.QtCore import QDate
from typing import Any, Dict, Optional

from core.services.derived import recompute_payment_cfa
from core.services.stats_service import format_number_fr

MODES_PAIEMENT = ["Virement", "Chèque", "Espèces", "Lettre de crédit", "Autre"]
DEVISES = ["USD", "EUR", "CNY", "GBP", "XOF"]


class ReglementDialog(QDialog):
    """Saisie d'un règlement ; le montant CFA est recalculé à chaque changement."""

    def __init__(self, parent=None, dossier_cours: float = 0.0):
        super().__init__(parent)
        self.setWindowTitle("Règlement")
        self.setModal(True)
        self._dossier_cours = dossier_cours

        self.dt_date = QDateEdit()
        self.dt_date.setCalendarPopup(True)
        self.dt_date.setDate(QDate.currentDate())
        self.ed_reference = QLineEdit()
        self.cb_mode = QComboBox(); self.cb_mode.addItems(MODES_PAIEMENT)
        self.ed_banque = QLineEdit()

        self.sp_montant = QDoubleSpinBox(); self.sp_montant.setRange(0, 1e12); self.sp_montant.setDecimals(2)
        self.cb_devise = QComboBox(); self.cb_devise.setEditable(True); self.cb_devise.addItems(DEVISES)

        # cours propre au règlement (sinon cours du dossier)
        self.chk_cours = QCheckBox("Cours spécifique")
        self.sp_cours = QDoubleSpinBox(); self.sp_cours.setRange(0, 1e6); self.sp_cours.setDecimals(4)
        self.sp_cours.setEnabled(False)

        self.sp_tps = QDoubleSpinBox(); self.sp_tps.setRange(0, 1e12); self.sp_tps.setDecimals(2)
        self.sp_frais = QDoubleSpinBox(); self.sp_frais.setRange(0, 1e12); self.sp_frais.setDecimals(2)
        self.lab_cfa = QLabel("0")

        form = QFormLayout()
        form.addRow("Date", self.dt_date)
        form.addRow("Référence", self.ed_reference)
        form.addRow("Mode de paiement", self.cb_mode)
        form.addRow("Banque", self.ed_banque)
        form.addRow("Montant devise", self.sp_montant)
        form.addRow("Devise", self.cb_devise)
        form.addRow(self.chk_cours, self.sp_cours)
        form.addRow("Montant TPS", self.sp_tps)
        form.addRow("Frais bancaires", self.sp_frais)
        form.addRow("Montant CFA", self.lab_cfa)

        btns = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        btns.accepted.connect(self.accept)
        btns.rejected.connect(self.reject)

        lay = QVBoxLayout(self)
        lay.addLayout(form)
        lay.addWidget(btns)

        self.chk_cours.toggled.connect(self.sp_cours.setEnabled)
        self.chk_cours.toggled.connect(self._update_cfa)
        self.sp_cours.valueChanged.connect(self._update_cfa)
        self.sp_montant.valueChanged.connect(self._update_cfa)
        self._update_cfa()

    def _update_cfa(self, *_):
        cfa = recompute_payment_cfa(self.get_fields(), self._dossier_cours)
        self.lab_cfa.setText(format_number_fr(cfa))

    def get_fields(self) -> Dict[str, Any]:
        cours: Optional[float] = float(self.sp_cours.value()) if self.chk_cours.isChecked() else None
        return {
            "date": self.dt_date.date().toPython().isoformat(),
            "reference": self.ed_reference.text().strip(),
            "mode_paiement": self.cb_mode.currentText(),
            "banque": self.ed_banque.text().strip(),
            "montant_devise": float(self.sp_montant.value()),
            "devise": self.cb_devise.currentText().strip(),
            "cours_devise": cours,
            "montant_tps": float(self.sp_tps.value()),
            "frais_bancaires": float(self.sp_frais.value()),
        }
