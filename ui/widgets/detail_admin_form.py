from __future__ import annotations
from PySide6.QtWidgets import QGroupBox, QFormLayout, QLineEdit
from typing import Optional

from core.models.common import to_number
from core.models.dossier import DetailAdministratif


def num_text(v: float) -> str:
    """12.50 -> "12.5", 0 -> "" (champ vide)."""
    if not v:
        return ""
    return format(v, "f").rstrip("0").rstrip(".")


class DetailAdminForm(QGroupBox):
    """Bloc administratif (aconnier, fret, transport...) : nom, facture, CC, montants."""

    def __init__(self, title: str, parent=None, detail: Optional[DetailAdministratif] = None):
        super().__init__(title, parent)

        self.ed_nom = QLineEdit()
        self.ed_num_facture = QLineEdit()
        self.ed_date = QLineEdit(); self.ed_date.setPlaceholderText("AAAA-MM-JJ")
        self.ed_num_cc = QLineEdit()
        self.ed_montant = QLineEdit()
        self.ed_montant_taxable = QLineEdit()
        self.ed_montant_tva = QLineEdit()

        form = QFormLayout(self)
        form.addRow("Nom", self.ed_nom)
        form.addRow("N° Facture", self.ed_num_facture)
        form.addRow("Date", self.ed_date)
        form.addRow("N° CC", self.ed_num_cc)
        form.addRow("Montant", self.ed_montant)
        form.addRow("Montant taxable", self.ed_montant_taxable)
        form.addRow("Montant TVA", self.ed_montant_tva)

        if detail:
            self.set_detail(detail)

    def set_detail(self, d: DetailAdministratif):
        self.ed_nom.setText(d.nom)
        self.ed_num_facture.setText(d.num_facture)
        self.ed_date.setText(d.date)
        self.ed_num_cc.setText(d.num_cc)
        self.ed_montant.setText(num_text(d.montant))
        self.ed_montant_taxable.setText(num_text(d.montant_taxable))
        self.ed_montant_tva.setText(num_text(d.montant_tva))

    def get_detail(self) -> DetailAdministratif:
        return DetailAdministratif(
            nom=self.ed_nom.text().strip(),
            num_facture=self.ed_num_facture.text().strip(),
            date=self.ed_date.text().strip(),
            num_cc=self.ed_num_cc.text().strip(),
            montant=to_number(self.ed_montant.text()) or 0.0,
            montant_taxable=to_number(self.ed_montant_taxable.text()) or 0.0,
            montant_tva=to_number(self.ed_montant_tva.text()) or 0.0,
        )
