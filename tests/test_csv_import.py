from gymscore.core import Division, decode_csv_bytes, parse_csv_text, split_csv_text
from gymscore.core.csv_import import parse_rows


def test_valid_rows_become_competitors(women_csv):
    competitors, errors = parse_csv_text(women_csv, Division.WOMEN)

    assert errors == []
    assert [c.id for c in competitors] == ["w-0", "w-1", "w-2"]
    first = competitors[0]
    assert first.name == "佐藤 花子"
    assert first.playerClass == "上級"
    assert first.scores == {"floor": 9.5, "vault": 9.0, "bars": 8.75, "beam": 9.1}
    assert first.total == 36.35


def test_malformed_row_is_reported_with_its_line_number():
    text = (
        "class,group,,name,floor,vault,bars,beam\n"
        "上級,1,,A,9,9,9,9\n"
        "上級,1,,B\n"
        "中級,2,,C,8,8,8,8\n"
        "初級,3,,D,7,7,7,7\n"
    )
    competitors, errors = parse_csv_text(text, Division.WOMEN)

    assert [c.name for c in competitors] == ["A", "C", "D"]
    # Ids follow accepted rows only, so they stay contiguous.
    assert [c.id for c in competitors] == ["w-0", "w-1", "w-2"]
    assert len(errors) == 1
    assert errors[0].lineNumber == 3
    assert errors[0].message.startswith("列の数が不足しています")


def test_empty_required_field_is_reported():
    text = "h,h,h,h,h,h,h,h\n上級,1,,,9,9,9,9\n"
    competitors, errors = parse_csv_text(text, Division.WOMEN)
    assert competitors == []
    assert errors[0].lineNumber == 2
    assert errors[0].message == "クラス、組、または選手名が空です。"


def test_numeric_group_gets_suffix():
    text = "h,h,h,h,h,h,h,h\n上級,2,,A,0,0,0,0\n上級,B組,,B,0,0,0,0\n"
    competitors, _ = parse_csv_text(text, Division.WOMEN)
    assert [c.playerGroup for c in competitors] == ["2組", "B組"]


def test_non_numeric_scores_become_zero():
    text = "h,h,h,h,h,h,h,h\n上級,1,,A,abc,,9.5,nan\n"
    competitors, errors = parse_csv_text(text, Division.WOMEN)
    assert errors == []
    assert competitors[0].scores == {"floor": 0.0, "vault": 0.0, "bars": 9.5, "beam": 0.0}
    assert competitors[0].total == 9.5


def test_men_need_six_apparatus_columns():
    text = (
        "h,h,h,h,h,h,h,h,h,h\n"
        "上級,1,,A,1,2,3,4,5,6\n"
        "上級,1,,B,1,2,3,4\n"
    )
    competitors, errors = parse_csv_text(text, Division.MEN)
    assert [c.id for c in competitors] == ["m-0"]
    assert competitors[0].total == 21.0
    assert errors[0].lineNumber == 3
    assert "10列必要" in errors[0].message


def test_blank_lines_are_skipped_silently():
    rows = [["h"], [], ["", "", ""], ["上級", "1", "", "A", "1", "1", "1", "1"]]
    competitors, errors = parse_rows(rows, Division.WOMEN)
    assert len(competitors) == 1
    assert errors == []


def test_quoted_fields_keep_commas():
    rows = split_csv_text('h\n上級,1,,"Smith, Jane",1,1,1,1\n')
    assert rows[1][3] == "Smith, Jane"


def test_shift_jis_bytes_are_decoded():
    text = "h,h,h,h,h,h,h,h\n上級,1,,山田 太郎,9,9,9,9\n"
    decoded = decode_csv_bytes(text.encode("cp932"))
    competitors, _ = parse_csv_text(decoded, Division.WOMEN)
    assert competitors[0].name == "山田 太郎"


def test_utf8_bom_is_stripped():
    decoded = decode_csv_bytes(b"\xef\xbb\xbfh\n")
    assert decoded == "h\n"
