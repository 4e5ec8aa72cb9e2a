from typing import Optional

from plansearch.schemas.vision import SheetType

BASE_PROMPT = """
You are a construction estimator reading one sheet of a utility plan set.
Extract only what a quantity takeoff needs, and prefer a short, accurate list
over a long, doubtful one. Report uncertainty through confidence scores.

## Step 1: Identify the sheet

Decide first whether this is an INDEX / TABLE OF CONTENTS sheet (a table of
sheet numbers and descriptions, titled "SHEET INDEX", "INDEX OF DRAWINGS" or
similar). Index sheets list what is in the set; they are not a source of
measured quantities or termination points. If it is one, set
`sheet_metadata.is_index_sheet` to true and `sheet_type` to "index".

## Step 2: Termination points (highest priority on plan and profile sheets)

Find BEGIN / END / TIE-IN labels on utility alignments, for example
"BEGIN WATER LINE 'A' STA 13+00" or "END SD-B STA 45+12.34". These labels are
often rotated along the pipe and printed small. They are the authoritative
source for line lengths. Record the utility name, the label type and the
station. Put cross-references such as "= ROAD A STA 42+64.00" in notes.

## Step 3: Quantities

- Profile view vertical labels ("12-IN GATE VALVE"): one label is one
  component. Put the size ("12-IN") in `size` and the component type in
  `item_name`. 12-IN and 8-IN items are different items.
- Callout boxes ("WATER LINE 'A' STA 32+44.21" followed by lines such as
  "1 - 12-IN X 8-IN TEE"): one row per line, station from the header.
- If the same component appears as a vertical label and in a callout box,
  report it once.
- Quantity tables: one row per table line, with unit and station range.
- Set `source_context` to "drawing_label", "quantity_table" or "index_list".

Do not extract match-line text, offsets ("O/S 27+10.47 RT"), road station
references ("ROAD 'A' STA 40+45.77"), title block text, legend entries or
notes as quantities.

## Step 4: Stations

A valid station looks like "5+23.50" or "32+62.01". Take component stations
from the horizontal station scale of the profile. If a station cannot be read
with confidence, use null.

## Step 5: Utility crossings (strict)

A crossing is a DIFFERENT utility system passing through the profile of the
main line. All of these must hold:
1. It is in the profile view.
2. A line visibly crosses the main utility.
3. It carries a short utility label: ELEC, SS, STM, SD, W, GAS, TEL, FO.
4. A reference number such as an elevation ("35.73±") is next to the label.

Never report a component of the main line as a crossing. Any label carrying
a pipe size of the main line ("12-IN GATE VALVE", "12-IN TEE",
"12-IN VERT DEFL") is a component. Match lines and main line labels
("INVERT OF 12-IN WATER") are not crossings either. Most projects have zero
to five crossings; if you find more than five on one sheet, re-check them.
"""

TITLE_SUMMARY_PROMPT = """
## This sheet looks like a title or summary sheet

Focus on the sheet index, legend and general notes. Do not extract individual
fittings or valves here; those come from the profile sheets. Only extract
project totals (for example the total length of a line) when printed.
"""

PLAN_PROMPT = """
## This sheet looks like a plan sheet

Many plan sheets are plan/profile combinations with the profile in the lower
half. If a profile section is present, read its vertical component labels;
they are the primary source of valve and fitting counts. If the sheet is plan
view only, do not count components from it. Always report termination labels,
line labels, pipe sizes and stations.
"""

PROFILE_PROMPT = """
## This sheet looks like a profile sheet

Scan the profile from the leftmost station to the right and read every rotated
label along the pipe. Each label is one component, located by its horizontal
position against the station scale. Report crossings only under the strict
crossing rules above, with confidence 0.7 to 0.8 unless the crossing is
unmistakable.
"""

OUTPUT_FORMAT_PROMPT = """
## Output format

Return ONLY a JSON object, with no markdown and no commentary:

{
  "sheet_metadata": {
    "sheet_number": "string or null",
    "sheet_title": "string or null",
    "sheet_type": "index|title|summary|plan|profile|detail|legend|unknown",
    "discipline": "string or null",
    "revision": "string or null",
    "date": "string or null",
    "is_index_sheet": false
  },
  "termination_points": [
    {"utility_name": "Water Line A", "termination_type": "BEGIN|END|TIE-IN|TERMINUS",
     "station": "32+62.01", "notes": "string or null", "confidence": 0.9}
  ],
  "quantities": [
    {"item_name": "GATE VALVE AND VALVE BOX", "item_number": "string or null",
     "quantity": 1, "unit": "EA", "size": "12-IN", "station_from": "5+23.50",
     "station_to": null, "description": "string or null", "confidence": 0.9,
     "source_context": "drawing_label|quantity_table|index_list"}
  ],
  "utility_crossings": [
    {"crossing_utility": "ELEC", "utility_full_name": "Electrical",
     "station": "5+23.50", "elevation": 35.73, "is_existing": true,
     "is_proposed": false, "size": null, "description": "string or null",
     "notes": "string or null", "confidence": 0.8}
  ],
  "stations": ["13+00", "13+68.83"]
}

Use null for anything not shown. Before answering, check that the counts are
plausible and that nothing was counted twice.
"""


def build_vision_prompt(
    sheet_type: Optional[SheetType] = None,
    sheet_number: Optional[str] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    """Extraction prompt with sheet-type specific guidance appended."""
    sections = [BASE_PROMPT.strip()]

    if sheet_number:
        sections.append(f"The sheet is believed to be sheet {sheet_number}.")

    if sheet_type in (SheetType.TITLE, SheetType.SUMMARY):
        sections.append(TITLE_SUMMARY_PROMPT.strip())
    elif sheet_type == SheetType.PLAN:
        sections.append(PLAN_PROMPT.strip())
    elif sheet_type == SheetType.PROFILE:
        sections.append(PROFILE_PROMPT.strip())

    if custom_prompt:
        sections.append(f"## Additional instructions\n\n{custom_prompt.strip()}")

    sections.append(OUTPUT_FORMAT_PROMPT.strip())
    return "\n\n".join(sections)
