"""Title marker tables used by title normalization.

Legacy program titles wrap cohort numbers and notes in brackets and end in
session suffixes ("3기", "2차", "시즌2") that name one run of a recurring
program. Extend these tables when new legacy conventions show up.
"""

# Opening/closing pairs whose contents are dropped from titles.
BRACKET_PAIRS = [
    ("(", ")"),
    ("[", "]"),
    ("{", "}"),
    ("<", ">"),
    ("【", "】"),
    ("〈", "〉"),
    ("《", "》"),
    ("「", "」"),
    ("『", "』"),
    ("〔", "〕"),
]

# Units written after a cohort/session number: "3기", "2차", "5회차".
# Longer units first so "회차" wins over "회".
SESSION_UNITS = [
    "기수",
    "회차",
    "학기",
    "기",
    "차",
    "회",
    "期",
]

# Words written before a session number: "시즌2", "season 3".
SESSION_PREFIXES = [
    "시즌",
    "season",
    "part",
    "vol",
]
