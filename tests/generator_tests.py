from __future__ import annotations

import importlib
import os
import pathlib
import subprocess
import sys
import tempfile
import textwrap
import unittest

from glacier_codegen.serde import DecodeError, decode, encode
from glacier_codegen.variant import TArray, ZString, ZVariant

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]

HEADER = textwrap.dedent(
    """
    #pragma once

    class SColorPair;

    enum class EColor
    {
    	Color_Red = 0,
    	Color_Green = 1,
    	Color_Blue = 2,
    };

    enum class EState
    {
    	EState_None,
    	EState_Active,
    	EState_Done = 4,
    	EState_Alias = 4,
    };

    class /*alignas(8)*/ SColorPair
    {
    public:
    	static ZHMTypeInfo TypeInfo;
    	static void WriteJson(void* p_Object, std::ostream& p_Stream);

    	EColor m_eFirst; // 0x0
    	bool m_bEnabled; // 0x4
    	TArray<uint8> m_aData; // 0x8
    	ZString m_sName; // 0x20
    	TFixedArray<uint16, 40> m_aWide; // 0x30

    	bool operator==(const SColorPair& p_Other) const;
    };

    class ZBag_SEntry
    {
    public:
    	ZVariant m_value; // 0x0
    	TMap<ZString, int32> m_counts; // 0x10
    	EState m_state; // 0x20
    };
    """
).lstrip()


class GeneratorBehaviorTests(unittest.TestCase):
    def run_gen(self, families: list[tuple[str, pathlib.Path]], out_dir: pathlib.Path, *extra: str) -> subprocess.CompletedProcess[str]:
        cmd = [sys.executable, "-m", "glacier_codegen"]
        for name, path in families:
            cmd.extend(["--family", f"{name}={path}"])
        cmd.extend(["--out", str(out_dir), *extra])
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
        return subprocess.run(cmd, cwd=REPO_ROOT, env=env, text=True, capture_output=True)

    def import_family(self, out_dir: pathlib.Path, name: str):
        sys.path.insert(0, str(out_dir))
        self.addCleanup(sys.path.remove, str(out_dir))
        for module in (name, f"{name}.enums", f"{name}.properties"):
            self.addCleanup(sys.modules.pop, module, None)
        return importlib.import_module(name)

    def test_three_families_generate_isolated_packages(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            families = []
            for name in ("hm2016_bindings", "hm2_bindings", "hm3_bindings"):
                path = tmp / f"{name}.h"
                path.write_text(HEADER, encoding="utf-8")
                families.append((name, path))

            result = self.run_gen(families, tmp / "out")
            self.assertEqual(result.returncode, 0, msg=result.stderr)

            for name, _ in families:
                package = tmp / "out" / name
                self.assertEqual(
                    sorted(p.name for p in package.iterdir()), ["__init__.py", "enums.py", "properties.py"]
                )
                self.assertIn(f"generated: {package / 'enums.py'}", result.stdout)
                properties = (package / "properties.py").read_text(encoding="utf-8")
                self.assertNotIn("hm2", properties.split("# digest:")[1])

    def test_generated_modules_content(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "content.h"
            in_path.write_text(HEADER, encoding="utf-8")

            result = self.run_gen([("content_bindings", in_path)], tmp / "out")
            self.assertEqual(result.returncode, 0, msg=result.stderr)

            enums = (tmp / "out" / "content_bindings" / "enums.py").read_text(encoding="utf-8")
            self.assertTrue(enums.startswith("# glacier-codegen generated\n"))
            self.assertIn("class EColor(GlacierEnum):", enums)
            self.assertIn("    None_ = 0\n", enums)
            self.assertIn("    Active = None_ + 1\n", enums)
            self.assertIn("    Alias = -4\n", enums)
            self.assertLess(enums.index("class EColor"), enums.index("class EState"))

            properties = (tmp / "out" / "content_bindings" / "properties.py").read_text(encoding="utf-8")
            self.assertIn('@external_name("SColorPair")', properties)
            self.assertIn('    is_b_enabled: bool = wire("m_bEnabled")', properties)
            self.assertIn('    a_wide: FixedArray[uint16, 40] = wire("m_aWide", wide_array=True)', properties)
            self.assertIn('    counts: Dict[ZString, int32] = wire("m_counts")', properties)
            self.assertIn('VARIANTS.register("ZBag.SEntry", ZBagSEntry)', properties)
            self.assertIn('VARIANTS.register("TArray<ZBag.SEntry>", TArray[ZBagSEntry])', properties)
            self.assertNotIn("type_info", properties)
            self.assertNotIn("operator", properties)

    def test_rerun_is_byte_identical(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "stable.h"
            in_path.write_text(HEADER, encoding="utf-8")

            first = self.run_gen([("stable_bindings", in_path)], tmp / "first")
            second = self.run_gen([("stable_bindings", in_path)], tmp / "second")
            self.assertEqual(first.returncode, 0, msg=first.stderr)
            self.assertEqual(second.returncode, 0, msg=second.stderr)
            for filename in ("__init__.py", "enums.py", "properties.py"):
                self.assertEqual(
                    (tmp / "first" / "stable_bindings" / filename).read_bytes(),
                    (tmp / "second" / "stable_bindings" / filename).read_bytes(),
                )

            again = self.run_gen([("stable_bindings", in_path)], tmp / "first")
            self.assertEqual(again.returncode, 0, msg=again.stderr)
            self.assertIn("unchanged:", again.stdout)
            self.assertNotIn("generated:", again.stdout)

    def test_check_mode_reports_drift(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "drift.h"
            in_path.write_text(HEADER, encoding="utf-8")
            families = [("drift_bindings", in_path)]

            check_missing = self.run_gen(families, tmp / "out", "--check")
            self.assertNotEqual(check_missing.returncode, 0)
            self.assertIn("is missing (run generator)", check_missing.stderr)

            first = self.run_gen(families, tmp / "out")
            self.assertEqual(first.returncode, 0, msg=first.stderr)

            check_ok = self.run_gen(families, tmp / "out", "--check")
            self.assertEqual(check_ok.returncode, 0, msg=check_ok.stderr)
            self.assertIn("up-to-date", check_ok.stdout)

            in_path.write_text(HEADER + "// changed\n", encoding="utf-8")
            check_bad = self.run_gen(families, tmp / "out", "--check")
            self.assertNotEqual(check_bad.returncode, 0)
            self.assertIn("out of date", check_bad.stderr)

    def test_unterminated_block_reported_with_location(self) -> None:
        source = "enum class EBroken\n{\n\tA = 0,\n"
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "broken.h"
            in_path.write_text(source, encoding="utf-8")

            result = self.run_gen([("broken_bindings", in_path)], tmp / "out")
            self.assertNotEqual(result.returncode, 0)
            self.assertRegex(result.stderr, r"broken\.h:2:1: error: unterminated block for 'EBroken'")
            self.assertFalse((tmp / "out" / "broken_bindings").exists())

    def test_unresolved_reference_warns_or_fails_in_strict_mode(self) -> None:
        source = "class SHolder\n{\npublic:\n\tZMissing m_missing;\n\tZString m_sName;\n};\n"
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "loose.h"
            in_path.write_text(source, encoding="utf-8")

            lenient = self.run_gen([("loose_bindings", in_path)], tmp / "out")
            self.assertEqual(lenient.returncode, 0, msg=lenient.stderr)
            self.assertRegex(
                lenient.stderr, r"loose\.h:4:2: warning: unresolved type 'ZMissing' for field 'SHolder::m_missing'"
            )
            self.assertNotIn("ZString", lenient.stderr)

            bindings = self.import_family(tmp / "out", "loose_bindings")
            with self.assertRaises(DecodeError) as ctx:
                decode(bindings.SHolder, {"m_missing": {}, "m_sName": "x"}, bindings.VARIANTS)
            self.assertIn("unresolved type in SHolder", str(ctx.exception))

            strict = self.run_gen([("loose_bindings", in_path)], tmp / "strict", "--strict")
            self.assertNotEqual(strict.returncode, 0)
            self.assertIn("loose.h:4:2: error: unresolved type 'ZMissing'", strict.stderr)

    def test_invalid_utf8_reported_per_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "latin1.h"
            in_path.write_bytes(b"enum class EName\n{\n\tName_\xe9 = 0,\n};\n")

            result = self.run_gen([("latin1_bindings", in_path)], tmp / "out")
            self.assertEqual(result.returncode, 1)
            self.assertIn("latin1.h: error: not valid UTF-8 at byte 25", result.stderr)
            self.assertNotIn("Traceback", result.stderr)

    def test_nested_fixed_arrays_validated(self) -> None:
        source = textwrap.dedent(
            """
            class SGrid
            {
            public:
            	TArray<TFixedArray<uint8, 4>> m_aQuads;
            	TArray<TFixedArray<float32, 64>> m_aRows;
            	TFixedArray<TFixedArray<uint8, 2>, 2> m_aPairs;
            };
            """
        )
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "grid.h"
            in_path.write_text(source, encoding="utf-8")
            result = self.run_gen([("grid_bindings", in_path)], tmp / "out")
            self.assertEqual(result.returncode, 0, msg=result.stderr)

            properties = (tmp / "out" / "grid_bindings" / "properties.py").read_text(encoding="utf-8")
            self.assertIn('    a_quads: List[FixedArray[uint8, 4]] = wire("m_aQuads")', properties)
            self.assertIn('    a_pairs: FixedArray[FixedArray[uint8, 2], 2] = wire("m_aPairs")', properties)

            bindings = self.import_family(tmp / "out", "grid_bindings")
            registry = bindings.VARIANTS
            valid = {
                "m_aQuads": [[1, 2, 3, 4]],
                "m_aRows": [[0.5] * 64, [1.0] * 64],
                "m_aPairs": [[1, 2], [3, 4]],
            }
            grid = decode(bindings.SGrid, valid, registry)
            self.assertEqual(grid.a_quads, [(1, 2, 3, 4)])
            self.assertEqual(len(grid.a_rows[1]), 64)
            self.assertEqual(grid.a_pairs, ((1, 2), (3, 4)))
            self.assertEqual(encode(grid), valid)

            with self.assertRaises(DecodeError) as ctx:
                decode(bindings.SGrid, dict(valid, m_aQuads=[[1, 2, 3]]), registry)
            self.assertEqual(ctx.exception.path, "$.m_aQuads[0]")
            with self.assertRaises(DecodeError) as ctx:
                decode(bindings.SGrid, dict(valid, m_aPairs=[[1, 2, 3], [4]]), registry)
            self.assertEqual(ctx.exception.path, "$.m_aPairs[0]")
            with self.assertRaises(DecodeError):
                decode(bindings.SGrid, dict(valid, m_aRows=[[0.5] * 63]), registry)

    def test_bad_family_argument_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            result = self.run_gen([("not-a-package", tmp / "x.h")], tmp / "out")
            self.assertEqual(result.returncode, 2)
            self.assertIn("not a valid package name", result.stderr)

    def test_generated_package_decodes_resource_json(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            tmp = pathlib.Path(td)
            in_path = tmp / "runtime.h"
            in_path.write_text(HEADER, encoding="utf-8")
            result = self.run_gen([("runtime_bindings", in_path)], tmp / "out")
            self.assertEqual(result.returncode, 0, msg=result.stderr)

            bindings = self.import_family(tmp / "out", "runtime_bindings")
            registry = bindings.VARIANTS
            self.assertIs(registry.resolve("EColor"), bindings.EColor)
            self.assertIs(registry.resolve("TArray<ZBag.SEntry>"), TArray[bindings.ZBagSEntry])
            self.assertIs(registry.resolve("TArray<ZString>"), TArray[ZString])
            self.assertEqual(bindings.EColor.Green, 1)
            self.assertEqual(bindings.EState.Active, 1)

            wide = list(range(40))
            data = {
                "m_eFirst": "Color_Green",
                "m_bEnabled": True,
                "m_aData": [1, 2, 3],
                "m_sName": "pair",
                "m_aWide": wide,
            }
            pair = decode(bindings.SColorPair, data, registry)
            self.assertIs(pair.e_first, bindings.EColor.Green)
            self.assertTrue(pair.is_b_enabled)
            self.assertEqual(pair.a_data, [1, 2, 3])
            self.assertIsInstance(pair.s_name, ZString)
            self.assertEqual(pair.a_wide, tuple(wide))
            self.assertEqual(encode(pair), data)

            entry_data = {
                "m_value": {"$type": "TArray<EColor>", "$val": ["Color_Red", "Color_Blue"]},
                "m_counts": {"a": 1},
                "m_state": "EState_Done",
            }
            entry = decode(bindings.ZBagSEntry, entry_data, registry)
            self.assertIsInstance(entry.value, ZVariant)
            self.assertEqual(entry.value.type, "TArray<EColor>")
            self.assertEqual(entry.value.value, [bindings.EColor.Red, bindings.EColor.Blue])
            self.assertIs(entry.state, bindings.EState.Done)
            self.assertEqual(encode(entry), entry_data)


if __name__ == "__main__":
    unittest.main()
