from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Annotated, Iterable, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from .common import text_or_empty

Text = Annotated[str, BeforeValidator(text_or_empty)]


def _int_text(value: Any) -> str:
    # 3.0 -> "3" (ids numériques renvoyés en float par certains exports)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return text_or_empty(value)


RefId = Annotated[str, BeforeValidator(_int_text)]


# ----------------- Entités de référence ----------------- #

class ReferenceItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: RefId
    name: Text = ""


class Origine(ReferenceItem):
    id: RefId = Field(validation_alias=AliasChoices("idOrigine", "IdOrigine", "id"))
    name: Text = Field("", validation_alias=AliasChoices("nomPays", "NomPays", "nom", "name"))


class Armateur(ReferenceItem):
    id: RefId = Field(validation_alias=AliasChoices("IdArmat", "idArmat", "id"))
    name: Text = Field("", validation_alias=AliasChoices("NomArmat", "nomArmat", "nom", "name"))


class TypeDossier(ReferenceItem):
    id: RefId = Field(validation_alias=AliasChoices("id", "idType"))
    name: Text = Field("", validation_alias=AliasChoices("typeDossier", "libelle", "name"))


class Navire(ReferenceItem):
    id: RefId = Field(validation_alias=AliasChoices("id", "idNavire"))
    name: Text = Field("", validation_alias=AliasChoices("nomNavire", "nom", "name"))
    armateur_name: Text = Field("", validation_alias=AliasChoices("armateurName", "armateur_name"))

    @property
    def display_name(self) -> str:
        return f"{self.name} - {self.armateur_name}" if self.armateur_name else self.name


# ----------------- Valeur de référence brute ----------------- #
# Une origine / un type arrive soit en id nu, soit en libellé, soit en objet embarqué.

@dataclass(frozen=True)
class RefById:
    id: str


@dataclass(frozen=True)
class RefByLabel:
    label: str


@dataclass(frozen=True)
class RefEmbedded:
    id: str
    label: str


RefValue = Union[RefById, RefByLabel, RefEmbedded]

_ID_KEYS = ("id", "idOrigine", "IdOrigine", "IdArmat", "idArmat", "idNavire")
_LABEL_KEYS = ("nom", "nomPays", "NomPays", "libelle", "typeDossier", "label", "NomArmat", "nomNavire", "name")


def _first(obj: Any, keys: Iterable[str]) -> str:
    for k in keys:
        v = obj.get(k) if isinstance(obj, Mapping) else getattr(obj, k, None)
        if v not in (None, ""):
            return _int_text(v)
    return ""


def parse_ref(raw: Any) -> Optional[RefValue]:
    """Classe une valeur brute : id nu, libellé ou objet embarqué (None si vide)."""
    if raw is None or isinstance(raw, (RefById, RefByLabel, RefEmbedded)):
        return raw
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return RefById(_int_text(raw))
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        return RefById(s) if s.isdigit() else RefByLabel(s)
    if isinstance(raw, (Mapping, BaseModel)):
        return RefEmbedded(id=_first(raw, _ID_KEYS), label=_first(raw, _LABEL_KEYS))
    return RefByLabel(str(raw))


def _match_label(label: str, options: Iterable[ReferenceItem]) -> Optional[str]:
    needle = label.strip().casefold()
    for opt in options:
        if opt.id == label or (opt.name or "").strip().casefold() == needle:
            return opt.id
    return None


def normalize_ref(raw: Any, options: Iterable[ReferenceItem] = ()) -> str:
    """Identifiant canonique d'une référence ("" si absente)."""
    ref = parse_ref(raw)
    options = list(options)
    if ref is None:
        return ""
    if isinstance(ref, RefEmbedded):
        if ref.id:
            return ref.id
        if not ref.label:
            return ""
        return _match_label(ref.label, options) or ref.label
    if isinstance(ref, RefById):
        return ref.id
    return _match_label(ref.label, options) or ref.label


def names_by_id(options: Iterable[ReferenceItem]) -> dict[str, str]:
    return {opt.id: opt.name for opt in options if opt.id}
