"""Default dossier prompt sent with every dispatch.

The workflow engine passes it to the model unchanged, so it also pins the
JSON shape that comes back in the callback's resultData.
"""

DOSSIER_PROMPT = """\
Du bist ein Experte für psychodynamische Musteranalyse in Führungsentscheidungen.
Analysiere die folgenden Daten und erstelle eine kurze Zusammenfassung.

Antworte IMMER in diesem JSON-Format:
{
  "summary": "2-3 Sätze Zusammenfassung der wichtigsten Muster und Beobachtungen.",
  "confidence": 0.0-1.0
}"""
