"""Letter-size invoice layout constants (points, top-left origin)."""

from __future__ import annotations

PAGE_H = 792
PAGE_BOTTOM_MARGIN = 30.0
CONTINUATION_TOP = 30.0

X_LEFT = 48
X_ITEM = 45
X_BAR = 30
BAR_W = 552
BAR_H = 20

# First-page table header
BAR_Y_FIRST = 209.0
BAR_TEXT_Y_FIRST = 221.2

# Continuation-page table header (no invoice header block)
BAR_Y_CONT = 12.8
BAR_TEXT_Y_CONT = 24.8

TITLE_RIGHT = 573
NUMBER_RIGHT = 568
DATE_LABEL_RIGHT = 461
RIGHT_AMOUNT = 566
RATE_RIGHT = 492
LABEL_RIGHT = 491

TITLE_Y = 48.0
NUMBER_Y = 67.5
STATUS_Y = 84.0
DATE_Y = 96.8
DUE_DATE_Y = 113.8
BALANCE_Y = 141.8

BILL_TO_LABEL_Y = 96.0
BILL_TO_NAME_Y = 111.8
BILL_TO_ADDR_Y = 123.8
ADDR_LINE_H = 12.0
BILL_TO_MAX_LINES = 6

BALANCE_BOX_X = 317.0
BALANCE_BOX_Y = 126.0
BALANCE_BOX_W = 270.0
BALANCE_BOX_H = 27.0

ITEMS_START_Y_FIRST = 246.8
ITEMS_START_Y_CONT = 42.0
ITEM_ROW_H = 17.2
NAME_LINE_H = 12.0
ITEM_TO_QTY_GUTTER = 12.0

TOTALS_START_Y_FIRST = 315.8
TOTAL_ROW_H_FIRST = 17.2
TOTALS_START_Y_CONT = 141.8
TOTAL_ROW_H_CONT = 21.7

NOTES_GAP = 34.0
NOTES_LABEL_Y_CONT = 240.0
NOTES_TEXT_OFFSET = 17.2
NOTES_LINE_H = 17.2

# Pagination capacities (rows of single-line items)
FIRST_PAGE_CAPACITY = 28
MID_PAGE_CAPACITY = 40
LAST_PAGE_CAPACITY = 6

# Colors (RGB)
COLOR_TITLE = (94, 94, 94)
COLOR_INVOICE_NUM = (149, 149, 149)
COLOR_LABEL = (105, 105, 105)
COLOR_BILLTO = (145, 145, 145)
COLOR_TEXT = (106, 106, 106)
COLOR_TEXT_ALT = (115, 115, 115)
COLOR_ITEM = (105, 105, 105)
COLOR_NUM = (113, 113, 113)
COLOR_NOTES = (111, 111, 111)
COLOR_TOTALS_LABEL = (118, 118, 118)
COLOR_BAR = (58, 58, 58)
COLOR_BAR_TEXT = (234, 234, 234)
COLOR_BOX = (249, 249, 249)

STATUS_COLORS = {
    "draft": (145, 145, 145),
    "sent": (52, 101, 164),
    "paid": (46, 139, 87),
    "overdue": (192, 57, 43),
}

FONT_SIZE_TITLE = 28
FONT_SIZE_NORMAL = 10
FONT_SIZE_SMALL = 9

BAR_RADIUS = 4.0
BOX_RADIUS = 4.0
