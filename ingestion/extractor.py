"""
Default document-understanding collaborator.

Turns exam-paper PDF bytes into an ExtractedPaper:
  1. pypdf text extraction
  2. GPT converts the text into the flat question list (with OR linkage)

The ingestion pipeline accepts any async callable with the same signature, so
tests and other deployments can plug in their own extractor.
"""

import io
import logging

from pydantic import ValidationError

from .schemas import ExtractedPaper

log = logging.getLogger("ingestion.pipeline")


PAPER_EXTRACTION_PROMPT = """You are an expert at extracting exam questions from university question papers.

Convert the following exam paper text into structured JSON.

PAPER TEXT:
---
{paper_text}
---

Output a JSON object ONLY (no markdown, no explanation):
{{
  "examInfo": {{
    "subjectCode": "<string or null, e.g. BCA301>",
    "subjectName": "<string>",
    "examType": "<MIDTERM_1|MIDTERM_2|END_TERM>",
    "date": "<YYYY-MM-DD or null>",
    "totalMarks": <number>,
    "duration": <minutes>,
    "semester": <number 1-8 or null>,
    "academicYear": "<e.g. 2024-2025 or null>"
  }},
  "instructions": ["<exam instruction>", ...],
  "allQuestions": [
    {{
      "questionNumber": "<1 or Q1 or 1a>",
      "text": "<full question text>",
      "marks": <number>,
      "section": "<A|B|... or null>",
      "options": ["<option>", ...],
      "questionType": "<MCQ|SHORT|LONG|DESCRIPTIVE>",
      "difficulty": "<EASY|MEDIUM|HARD>",
      "module": <module number if printed on the paper, else null>,
      "topic": "<syllabus topic the question tests, or null>",
      "isAlternative": <true|false>,
      "alternativeOf": "<questionNumber this is an OR alternative to, or null>"
    }},
    ...
  ]
}}

RULES:
1. Extract EVERY question; expand sub-parts (1a, 1b) into separate entries
2. For OR questions set isAlternative=true and alternativeOf to the question number it replaces
3. Capture the exact marks of each question
4. questionType: MCQ (has options), SHORT (1-3 marks), LONG (5+ marks), DESCRIPTIVE (explanation/code)
5. difficulty: EASY (recall), MEDIUM (understanding), HARD (apply/analyze)
6. allQuestions must be FLAT
7. Output ONLY valid JSON. No markdown fences.
"""


def extract_pdf_text(pdf_bytes: bytes) -> str:
    """Extract plain text from a PDF byte stream using pypdf."""
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        texts = []
        for page in reader.pages:
            t = page.extract_text()
            if t:
                texts.append(t.strip())
        return "\n".join(texts)
    except PdfReadError as e:
        raise ValueError(f"PDF extraction failed: {e}") from e


async def extract_paper(pdf_bytes: bytes) -> ExtractedPaper:
    """PDF bytes → ExtractedPaper via pypdf + GPT."""
    from generation.gpt_client import call_gpt, extract_json

    text = extract_pdf_text(pdf_bytes)
    if not text.strip():
        raise ValueError("Could not extract text from uploaded PDF.")

    log.info("[EXTRACT] %s characters of paper text", len(text))
    raw = await call_gpt(
        PAPER_EXTRACTION_PROMPT.format(paper_text=text),
        temperature=0.1,
        max_tokens=8192,
        json_mode=True,
    )
    try:
        paper = ExtractedPaper.model_validate(extract_json(raw))
    except (ValueError, ValidationError) as e:
        raise ValueError(f"Paper extractor returned invalid JSON: {e}\nRaw: {raw[:500]}") from e

    log.info("[EXTRACT] %s questions extracted", len(paper.all_questions))
    return paper
