import json
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from _fakes import NVIDIA_LINE
from hostwatch_telemetry.gpu import GpuQueryError, decode_nvidia_smi, decode_rocm_smi


ROCM_JSON = {
    "card0": {
        "GPU ID": "0x73bf",
        "Card series": "Navi 21 [Radeon RX 6800/6800 XT / 6900 XT]",
        "GPU use (%)": "37",
        "VRAM Total Memory (B)": "17163091968",
        "VRAM Total Used Memory (B)": "1073741824",
        "Average Graphics Package Power (W)": "45.0",
        "Temperature (Sensor junction) (C)": "60.0",
        "Temperature (Sensor edge) (C)": "51.0",
    },
    "system": {"Driver version": "6.7.0"},
}


class NvidiaDecoderTests(unittest.TestCase):
    def test_full_row_with_carriage_return(self):
        cards = decode_nvidia_smi(NVIDIA_LINE)
        self.assertEqual(len(cards), 1)
        card = cards[0]
        self.assertEqual(card.name, "NVIDIA GeForce RTX 3080")
        self.assertEqual(card.sample.card_id, 0)
        self.assertAlmostEqual(card.sample.load, 0.42)
        self.assertEqual(card.sample.memory_used, 1024.0)
        self.assertEqual(card.sample.memory_total, 10240.0)
        self.assertEqual(card.sample.power, 215.50)
        self.assertEqual(card.sample.temperature, 65)

    def test_bad_memory_field_defaults_and_keeps_row(self):
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR") as logs:
            cards = decode_nvidia_smi("1, Tesla T4, 10, abc, 15360, 27.85, 40\n")
        self.assertEqual(len(cards), 1)
        sample = cards[0].sample
        self.assertEqual(sample.memory_used, 0.0)
        self.assertEqual(sample.memory_total, 15360.0)
        self.assertEqual(sample.card_id, 1)
        self.assertEqual(sample.temperature, 40)
        self.assertIn("memory.used", logs.output[0])

    def test_unsupported_power_reading_defaults_to_zero(self):
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR"):
            cards = decode_nvidia_smi("0, GeForce GT 710, 3, 120, 2048, [N/A], 38")
        self.assertEqual(cards[0].sample.power, 0.0)
        self.assertAlmostEqual(cards[0].sample.load, 0.03)

    def test_multiple_cards_and_blank_lines(self):
        text = "0, GPU A, 5, 100, 8192, 30.0, 41\r\n\r\n1, GPU B, 95, 8000, 8192, 250.0, 80\r\n\n"
        cards = decode_nvidia_smi(text)
        self.assertEqual([c.sample.card_id for c in cards], [0, 1])
        self.assertEqual([c.name for c in cards], ["GPU A", "GPU B"])
        self.assertEqual(cards[1].sample.temperature, 80)

    def test_short_row_is_skipped(self):
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR"):
            cards = decode_nvidia_smi("0, GPU A, 5\n" + NVIDIA_LINE)
        self.assertEqual(len(cards), 1)

    def test_long_row_is_skipped(self):
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR") as logs:
            cards = decode_nvidia_smi("0, NVIDIA A100, PCIe, 5, 100, 40960, 50.0, 33\n" + NVIDIA_LINE)
        self.assertEqual([c.name for c in cards], ["NVIDIA GeForce RTX 3080"])
        self.assertIn("8 fields", logs.output[0])

    def test_empty_output(self):
        self.assertEqual(decode_nvidia_smi(""), [])


class RocmDecoderTests(unittest.TestCase):
    def test_decodes_card_and_converts_bytes_to_mib(self):
        cards = decode_rocm_smi(json.dumps(ROCM_JSON))
        self.assertEqual(len(cards), 1)
        card = cards[0]
        self.assertTrue(card.name.startswith("Navi 21"))
        self.assertEqual(card.sample.card_id, 0)
        self.assertAlmostEqual(card.sample.load, 0.37)
        self.assertEqual(card.sample.memory_used, 1024.0)
        self.assertEqual(card.sample.memory_total, 16368.0)
        self.assertEqual(card.sample.power, 45.0)
        self.assertEqual(card.sample.temperature, 51)

    def test_cards_sorted_by_index_and_missing_fields_default(self):
        payload = {"card10": {"GPU use (%)": "1"}, "card2": {"GPU use (%)": "2"}}
        with self.assertLogs("hostwatch.telemetry.gpu", level="ERROR"):
            cards = decode_rocm_smi(json.dumps(payload))
        self.assertEqual([c.sample.card_id for c in cards], [2, 10])
        self.assertEqual(cards[0].sample.memory_total, 0.0)
        self.assertEqual(cards[0].sample.temperature, 0)
        self.assertEqual(cards[0].name, "")

    def test_invalid_json_raises(self):
        with self.assertRaises(GpuQueryError):
            decode_rocm_smi("WARNING: no AMD GPUs specified")


if __name__ == "__main__":
    unittest.main()
