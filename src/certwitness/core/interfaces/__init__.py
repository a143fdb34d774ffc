"""Interfaces/abstracciones del Core.

Por qué:
- Define el contrato (Protocol) que implementan las fuentes de cadena.
- El pipeline depende de la abstracción, así los tests inyectan fakes.
"""

