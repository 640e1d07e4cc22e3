"""Message catalog and translator for user-facing text."""

from __future__ import annotations

import logging

logger = logging.getLogger("larder.i18n")

FALLBACK_LOCALE = "en"

CATALOG: dict[str, dict[str, str]] = {
    "en": {
        "agent.messages.processing": "Working on it...",
        "agent.messages.unifiedError": "Something went wrong talking to the assistant. Please try again.",
        "agent.messages.toolUnavailable": "The action '{name}' is not available right now.",
        "agent.messages.callFailed": "The assistant could not be reached.",
        "agent.messages.timeout": "The assistant took too long to answer.",
        "agent.messages.noEndpoint": "No assistant endpoint is configured.",
        "agent.errors.invalidArgument": "Missing or invalid value for '{field}'.",
        "agent.errors.toolFailed": "The action '{name}' failed unexpectedly.",
        "agent.errors.quantityPositive": "The quantity must be greater than zero.",
        "agent.errors.unknownLocation": "I don't know the location '{value}'.",
        "agent.errors.productNotFound": "I couldn't find '{name}' in your pantry.",
        "agent.errors.notEnoughStock": "There is not enough '{name}' in {location}.",
        "agent.errors.notInLocation": "There is no '{name}' in {location}.",
        "agent.errors.sameLocation": "{name} is already in {location}.",
        "agent.errors.batchNotFound": "No batch expiring on {date}.",
        "agent.details.options": "Options: {value}",
        "agent.details.suggestions": "Did you mean: {value}?",
        "agent.results.addNew": "Added {name} to {location}.",
        "agent.results.addExisting": "Added more {name} to {location}.",
        "agent.results.adjusted": "{name} in {location} is now {quantity}.",
        "agent.results.deleted": "Removed {name} from your pantry.",
        "agent.results.moved": "Moved {quantity} {name} from {source} to {target}.",
        "agent.results.expiring": "{count} products expire within {days} days.",
        "agent.results.expiringEmpty": "Nothing expires within the next {days} days.",
        "agent.results.opened": "Marked {name} in {location} as opened.",
        "agent.results.products": "You have {count} products.",
        "agent.results.emptyPantry": "Your pantry is empty.",
        "agent.results.byLocation": "{count} products in {location}.",
        "agent.results.locations": "Locations: {value}",
        "agent.results.categories": "Categories: {value}",
    },
    "es": {
        "agent.messages.processing": "Procesando...",
        "agent.messages.unifiedError": "Algo fue mal hablando con el agente. ¿Puedes intentar de nuevo?",
        "agent.messages.toolUnavailable": "La acción '{name}' no está disponible ahora mismo.",
        "agent.messages.callFailed": "No se pudo contactar con el agente.",
        "agent.messages.timeout": "El agente tardó demasiado en responder.",
        "agent.messages.noEndpoint": "No hay ningún endpoint del agente configurado.",
        "agent.errors.invalidArgument": "Falta o no es válido el valor de '{field}'.",
        "agent.errors.toolFailed": "La acción '{name}' falló de forma inesperada.",
        "agent.errors.quantityPositive": "La cantidad debe ser mayor que cero.",
        "agent.errors.unknownLocation": "No conozco la ubicación '{value}'.",
        "agent.errors.productNotFound": "No encuentro '{name}' en tu despensa.",
        "agent.errors.notEnoughStock": "No hay suficiente '{name}' en {location}.",
        "agent.errors.notInLocation": "No hay '{name}' en {location}.",
        "agent.errors.sameLocation": "{name} ya está en {location}.",
        "agent.errors.batchNotFound": "No hay ningún lote que caduque el {date}.",
        "agent.details.options": "Opciones: {value}",
        "agent.details.suggestions": "¿Quisiste decir: {value}?",
        "agent.results.addNew": "He añadido {name} a {location}.",
        "agent.results.addExisting": "He añadido más {name} a {location}.",
        "agent.results.adjusted": "{name} en {location} queda en {quantity}.",
        "agent.results.deleted": "He eliminado {name} de tu despensa.",
        "agent.results.moved": "He movido {quantity} {name} de {source} a {target}.",
        "agent.results.expiring": "{count} productos caducan en los próximos {days} días.",
        "agent.results.expiringEmpty": "Nada caduca en los próximos {days} días.",
        "agent.results.opened": "He marcado {name} en {location} como abierto.",
        "agent.results.products": "Tienes {count} productos.",
        "agent.results.emptyPantry": "Tu despensa está vacía.",
        "agent.results.byLocation": "{count} productos en {location}.",
        "agent.results.locations": "Ubicaciones: {value}",
        "agent.results.categories": "Categorías: {value}",
    },
}


class Translator:
    """Callable lookup: ``t("agent.results.addNew", name="Milk", location="Fridge")``."""

    def __init__(self, locale: str = FALLBACK_LOCALE):
        self.locale = locale

    @property
    def locale(self) -> str:
        return self._locale

    @locale.setter
    def locale(self, value: str) -> None:
        base = (value or "").lower().replace("_", "-").split("-")[0]
        self._locale = base if base in CATALOG else FALLBACK_LOCALE

    def __call__(self, key: str, **params: object) -> str:
        template = CATALOG[self._locale].get(key) or CATALOG[FALLBACK_LOCALE].get(key)
        if template is None:
            logger.debug("Missing translation key: %s", key)
            return key
        try:
            return template.format(**params)
        except (KeyError, IndexError):
            logger.debug("Missing parameter for translation key: %s", key)
            return template
