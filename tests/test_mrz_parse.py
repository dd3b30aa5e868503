from __future__ import annotations

import unittest
from dataclasses import replace

from errors import FormatError, NoValidLines, UnsupportedLineCount
from mrz_utils import (
    MrzFormat,
    classify,
    extract_field,
    extract_names,
    format_mrz_date,
    pad_line,
    parse_mrz,
    validate_mrz,
)

TD3_L1 = "P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<"
TD3_L2 = "L898902C36UTO7408122F1204159ZE184226B<<<<<10"

TD1_L1 = "I<UTOD231458907<<<<<<<<<<<<<<<"
TD1_L2 = "7408122F1204159UTO<<<<<<<<<<<6"
TD1_L3 = "ERIKSSON<<ANNA<MARIA<<<<<<<<<<"

TD2_L1 = "I<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<"
TD2_L2 = "D231458907UTO7408122F1204159<<<<<<<6"


class TestMrzTd3(unittest.TestCase):
    def test_specimen_passport(self) -> None:
        rec = parse_mrz(f"{TD3_L1}\n{TD3_L2}")

        self.assertEqual(rec.document_type, MrzFormat.TD3)
        self.assertEqual(rec.issuing_country, "UTO")
        self.assertEqual(rec.surname, "ERIKSSON")
        self.assertEqual(rec.given_names, "ANNA MARIA")
        self.assertEqual(rec.document_number, "L898902C3")
        self.assertEqual(rec.nationality, "UTO")
        self.assertEqual(rec.date_of_birth, "740812")
        # raw character at [20, 21)
        self.assertEqual(rec.sex, "F")
        self.assertEqual(rec.date_of_expiry, "120415")
        self.assertEqual(rec.optional_data, "ZE184226B")
        self.assertEqual(rec.confidence, 0.75)
        self.assertEqual(rec.raw_lines, (TD3_L1, TD3_L2))

    def test_spaces_case_and_noise_lines_are_cleaned(self) -> None:
        text = "\n".join(
            [
                "PASSPORT",  # too short, dropped
                "  p<uto eriksson<<anna<maria<<<<<<<<<<<<<<<<<<<  ",
                "",
                TD3_L2,
            ]
        )
        rec = parse_mrz(text)
        self.assertEqual(rec.document_type, MrzFormat.TD3)
        self.assertEqual(rec.surname, "ERIKSSON")

    def test_short_lines_are_padded_with_filler(self) -> None:
        rec = parse_mrz(f"{TD3_L1[:41]}\n{TD3_L2[:30]}")
        self.assertEqual(len(rec.raw_lines[0]), 44)
        self.assertEqual(len(rec.raw_lines[1]), 44)
        self.assertTrue(rec.raw_lines[1].endswith("<" * 14))
        self.assertEqual(rec.optional_data, "ZE")

    def test_long_lines_are_truncated(self) -> None:
        rec = parse_mrz(f"{TD3_L1}XYZ\n{TD3_L2}XYZ")
        self.assertEqual(rec.raw_lines, (TD3_L1, TD3_L2))

    def test_to_dict_shape(self) -> None:
        d = parse_mrz(f"{TD3_L1}\n{TD3_L2}").to_dict()
        self.assertEqual(d["document_type"], "TD3")
        self.assertEqual(d["raw_mrz"], [TD3_L1, TD3_L2])
        self.assertEqual(d["given_names"], "ANNA MARIA")


class TestMrzTd1Td2(unittest.TestCase):
    def test_td1_id_card(self) -> None:
        rec = parse_mrz("\n".join([TD1_L1, TD1_L2, TD1_L3]))

        self.assertEqual(rec.document_type, MrzFormat.TD1)
        self.assertEqual(rec.issuing_country, "UTO")
        self.assertEqual(rec.document_number, "D23145890")
        self.assertEqual(rec.optional_data, "")
        self.assertEqual(rec.date_of_birth, "740812")
        self.assertEqual(rec.sex, "F")
        self.assertEqual(rec.date_of_expiry, "120415")
        self.assertEqual(rec.nationality, "UTO")
        self.assertEqual(rec.surname, "ERIKSSON")
        self.assertEqual(rec.given_names, "ANNA MARIA")
        self.assertEqual(len(rec.raw_lines), 3)

    def test_td2_document(self) -> None:
        rec = parse_mrz(f"{TD2_L1}\n{TD2_L2}")

        self.assertEqual(rec.document_type, MrzFormat.TD2)
        self.assertEqual(rec.issuing_country, "UTO")
        self.assertEqual(rec.surname, "ERIKSSON")
        self.assertEqual(rec.given_names, "ANNA MARIA")
        self.assertEqual(rec.document_number, "D23145890")
        self.assertEqual(rec.nationality, "UTO")
        self.assertEqual(rec.date_of_birth, "740812")
        self.assertEqual(rec.sex, "F")
        self.assertEqual(rec.date_of_expiry, "120415")
        self.assertEqual(rec.optional_data, "")
        self.assertEqual([len(ln) for ln in rec.raw_lines], [36, 36])


class TestMrzClassification(unittest.TestCase):
    def test_three_lines_is_td1(self) -> None:
        self.assertEqual(classify(["A" * 20, "B" * 50, "C" * 25]), MrzFormat.TD1)

    def test_two_lines_split_on_first_line_length(self) -> None:
        self.assertEqual(classify(["A" * 40, "B" * 20]), MrzFormat.TD3)
        self.assertEqual(classify(["A" * 39, "B" * 60]), MrzFormat.TD2)

    def test_unsupported_line_count(self) -> None:
        with self.assertRaises(UnsupportedLineCount) as ctx:
            parse_mrz("\n".join(["X" * 30] * 4))
        self.assertEqual(ctx.exception.line_count, 4)

        with self.assertRaises(UnsupportedLineCount):
            parse_mrz("X" * 44)

    def test_no_valid_lines(self) -> None:
        with self.assertRaises(NoValidLines):
            parse_mrz("too short\n\n   \nP<UTO")
        with self.assertRaises(FormatError):
            parse_mrz("")


class TestMrzCorrections(unittest.TestCase):
    def test_zero_in_names_becomes_letter_o(self) -> None:
        self.assertEqual(extract_names("D0E<<J0HN<<<<"), ("DOE", "JOHN"))

    def test_name_field_without_delimiter(self) -> None:
        self.assertEqual(extract_names("MADONNA"), ("MADONNA", ""))

    def test_birth_date_gets_o_to_zero_but_expiry_does_not(self) -> None:
        line2 = "L898902C36UTO74O8122F12O4159ZE184226B<<<<<10"
        rec = parse_mrz(f"{TD3_L1}\n{line2}")
        self.assertEqual(rec.date_of_birth, "740812")
        self.assertEqual(rec.date_of_expiry, "12O415")

    def test_name_correction_in_full_parse(self) -> None:
        line1 = "P<UTOSM1TH<<J0HN<<<<<<<<<<<<<<<<<<<<<<<<<<<<"
        rec = parse_mrz(f"{line1}\n{TD3_L2}")
        self.assertEqual(rec.given_names, "JOHN")
        # only 0 is corrected; other digits are left as scanned
        self.assertEqual(rec.surname, "SM1TH")


class TestMrzHelpers(unittest.TestCase):
    def test_pad_line(self) -> None:
        self.assertEqual(pad_line("ABC", 5), "ABC<<")
        self.assertEqual(pad_line("ABCDEFG", 5), "ABCDE")

    def test_extract_field_bounds(self) -> None:
        self.assertEqual(extract_field("ABCDEF", 2, 4), "CD")
        self.assertEqual(extract_field("ABCDEF", 4, 10), "EF")
        self.assertEqual(extract_field("ABCDEF", 6, 8), "")
        self.assertEqual(extract_field("ABCDEF", 9, 12), "")


class TestMrzDatesAndValidation(unittest.TestCase):
    def test_format_date_century_pivot(self) -> None:
        self.assertEqual(format_mrz_date("740812"), "1974-08-12")
        self.assertEqual(format_mrz_date("120415"), "2012-04-15")
        # 50 itself is not above the pivot
        self.assertEqual(format_mrz_date("500101"), "2050-01-01")
        self.assertEqual(format_mrz_date("510101"), "1951-01-01")

    def test_format_date_passes_through_other_lengths(self) -> None:
        self.assertEqual(format_mrz_date("12345"), "12345")
        self.assertEqual(format_mrz_date(""), "")

    def test_specimens_are_valid(self) -> None:
        for text in (f"{TD3_L1}\n{TD3_L2}", f"{TD1_L1}\n{TD1_L2}\n{TD1_L3}", f"{TD2_L1}\n{TD2_L2}"):
            self.assertEqual(validate_mrz(parse_mrz(text)), (True, []))

    def test_bad_fields_are_reported(self) -> None:
        rec = replace(parse_mrz(f"{TD3_L1}\n{TD3_L2}"), sex="Q", nationality="UT", document_number="")
        ok, errors = validate_mrz(rec)

        self.assertFalse(ok)
        self.assertEqual(errors, ["Missing document number", "Invalid nationality code", "Invalid sex indicator"])

    def test_blank_document_number_in_full_parse(self) -> None:
        rec = parse_mrz(f"{TD3_L1}\n<<<<<<<<<<{TD3_L2[10:]}")
        self.assertEqual(validate_mrz(rec), (False, ["Missing document number"]))


if __name__ == "__main__":
    unittest.main()
