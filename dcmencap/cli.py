from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from .config import build_config, load_yaml_config
from .documents import PROFILES
from .encapsulate import run
from .errors import EncapsulationError
from .fields import Field

logger = logging.getLogger(__name__)

_PROGS = {
    "cda": ("cda2dcm", "Encapsulate an HL7 CDA document into a DICOM file"),
    "pdf": ("pdf2dcm", "Encapsulate a PDF file into a DICOM file"),
    "stl": ("stl2dcm", "Encapsulate an STL 3D model into a DICOM file"),
}


def build_parser(document_class: str) -> argparse.ArgumentParser:
    prog, description = _PROGS[document_class]
    p = argparse.ArgumentParser(prog=prog, description=description)
    p.add_argument("input", help="Document file to encapsulate")
    p.add_argument("output", help="DICOM output file")

    g = p.add_argument_group("general")
    g.add_argument("--config", default=None, help="YAML file with default settings (CLI options take precedence)")
    g.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity")
    g.add_argument("-q", "--quiet", action="count", default=0, help="Only report warnings (twice: errors)")
    src = g.add_mutually_exclusive_group()
    src.add_argument("--series-from", default=None, metavar="FILE", help="Read patient/study/series data from DICOM file")
    src.add_argument("--study-from", default=None, metavar="FILE", help="Read patient/study data from DICOM file (new series)")
    inst = g.add_mutually_exclusive_group()
    inst.add_argument("--instance-one", action="store_true", help="Use instance number 1 (default)")
    inst.add_argument("--instance-inc", action="store_true", help="Increment instance number read from --series-from")
    inst.add_argument("--instance-set", type=int, default=None, metavar="N", help="Use instance number N")
    g.add_argument("--uid-prefix", default=None, help="UID root for generated identifiers")

    d = p.add_argument_group("document metadata")
    d.add_argument("--title", default=None, help="Document title")
    d.add_argument(
        "--concept-name",
        nargs=3,
        default=None,
        metavar=("CSD", "CV", "CM"),
        help="Document concept name: coding scheme designator, code value, code meaning",
    )
    d.add_argument("--patient-name", default=None, help="Patient name (DICOM PN, e.g. Doe^John)")
    d.add_argument("--patient-id", default=None, help="Patient ID")
    d.add_argument("--patient-birthdate", default=None, help="Patient birth date (YYYYMMDD)")
    d.add_argument("--patient-sex", default=None, help="Patient sex (M, F or O)")
    d.add_argument(
        "-k",
        "--key",
        action="append",
        default=None,
        help='Override attribute after conversion: "gggg,eeee=str", keyword or path; may be repeated',
    )

    if document_class == "cda":
        c = p.add_argument_group("CDA")
        c.add_argument(
            "--require-field",
            action="append",
            default=None,
            choices=[f.value for f in Field],
            help="Fail unless the CDA document provides this field; may be repeated",
        )
    elif document_class == "pdf":
        a = p.add_argument_group("PDF")
        ann = a.add_mutually_exclusive_group()
        ann.add_argument("--annotation-yes", dest="annotation", action="store_const", const=True, default=None,
                         help="Document contains patient identifying data (default)")
        ann.add_argument("--annotation-no", dest="annotation", action="store_const", const=False,
                         help="Document does not contain patient identifying data")
    elif document_class == "stl":
        s = p.add_argument_group("STL")
        s.add_argument("--manufacturer", default=None, help="Equipment manufacturer")
        s.add_argument("--manufacturer-model", default=None, help="Manufacturer's model name")
        s.add_argument("--device-serial", default=None, help="Device serial number")
        s.add_argument("--software-versions", default=None, help="Software versions")
        s.add_argument(
            "--measurement-units",
            nargs=3,
            default=None,
            metavar=("CV", "CSD", "CM"),
            help="Measurement units code (default: mm UCUM mm)",
        )

    o = p.add_argument_group("output encoding")
    xfer = o.add_mutually_exclusive_group()
    xfer.add_argument("--write-xfer-little", dest="transfer_syntax", action="store_const", const="little", default=None,
                      help="Explicit VR little endian (default)")
    xfer.add_argument("--write-xfer-implicit", dest="transfer_syntax", action="store_const", const="implicit",
                      help="Implicit VR little endian")
    xfer.add_argument("--write-xfer-big", dest="transfer_syntax", action="store_const", const="big",
                      help="Explicit VR big endian (retired)")
    o.add_argument("--padding", type=int, default=None, metavar="N", help="Pad file length to a multiple of N bytes")
    return p


def _configure_logging(verbose: int, quiet: int) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING if quiet == 1 else logging.ERROR
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _values_from_args(document_class: str, args: argparse.Namespace) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if args.config:
        values.update(load_yaml_config(args.config))

    values["document_class"] = document_class
    values["input_path"] = Path(args.input).resolve()
    values["output_path"] = Path(args.output).resolve()

    user: Dict[str, Any] = dict(values.get("user_fields") or {})
    cli_fields = {
        Field.DOCUMENT_TITLE.value: args.title,
        Field.PATIENT_NAME.value: args.patient_name,
        Field.PATIENT_ID.value: args.patient_id,
        Field.PATIENT_BIRTH_DATE.value: args.patient_birthdate,
        Field.PATIENT_SEX.value: args.patient_sex,
    }
    if args.concept_name:
        csd, cv, cm = args.concept_name
        cli_fields[Field.CONCEPT_CODING_SCHEME.value] = csd
        cli_fields[Field.CONCEPT_CODE_VALUE.value] = cv
        cli_fields[Field.CONCEPT_CODE_MEANING.value] = cm
    user.update({k: v for k, v in cli_fields.items() if v is not None})
    values["user_fields"] = user

    if args.series_from:
        values["series_file"] = Path(args.series_from).resolve()
        values["read_series_info"] = True
    elif args.study_from:
        values["series_file"] = Path(args.study_from).resolve()
        values["read_series_info"] = False

    if args.instance_inc:
        if not values.get("series_file") or not values.get("read_series_info", True):
            raise ValueError("--instance-inc requires --series-from")
        values["auto_increment"] = True
    elif args.instance_set is not None:
        values["instance_number"] = args.instance_set
    elif args.instance_one:
        values["instance_number"] = 1

    if args.key:
        values["override_keys"] = list(values.get("override_keys") or []) + list(args.key)

    optional = {
        "uid_prefix": args.uid_prefix,
        "transfer_syntax": args.transfer_syntax,
        "file_padding": args.padding,
        "annotation": getattr(args, "annotation", None),
        "required_fields": getattr(args, "require_field", None),
        "manufacturer": getattr(args, "manufacturer", None),
        "manufacturer_model": getattr(args, "manufacturer_model", None),
        "device_serial": getattr(args, "device_serial", None),
        "software_versions": getattr(args, "software_versions", None),
        "measurement_units": getattr(args, "measurement_units", None),
    }
    values.update({k: v for k, v in optional.items() if v is not None})
    return values


def run_document_class(document_class: str, argv: list[str]) -> int:
    args = build_parser(document_class).parse_args(argv)
    _configure_logging(args.verbose, args.quiet)
    try:
        cfg = build_config(_values_from_args(document_class, args))
        result = run(cfg)
    except EncapsulationError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    except (ValueError, TypeError, OSError) as exc:
        logger.error("%s", exc)
        return 1
    logger.info("Encapsulated %s as SOP Instance %s", cfg.input_path.name, result.identifiers.sop_instance_uid)
    return 0


def _doctor(argv: list[str]) -> int:
    import platform
    from importlib import metadata as importlib_metadata
    argparse.ArgumentParser(prog="dcmencap doctor", description="Check environment for dcmencap").parse_args(argv)

    print("dcmencap doctor")
    print(f"- Python: {platform.python_version()} on {platform.system()} {platform.release()}")

    def ver(name: str) -> str:
        try:
            return importlib_metadata.version(name)
        except importlib_metadata.PackageNotFoundError:
            return "not installed"
    print(f"- pydicom: {ver('pydicom')}")
    print(f"- lxml: {ver('lxml')}")
    print(f"- PyYAML: {ver('PyYAML')}")
    print(f"- document classes: {', '.join(PROFILES)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    if argv and argv[0] == "doctor":
        return _doctor(argv[1:])
    if not argv or argv[0] not in _PROGS:
        print(f"usage: dcmencap {{{','.join(_PROGS)},doctor}} ...", file=sys.stderr)
        return 2
    return run_document_class(argv[0], argv[1:])


def cda2dcm() -> int:
    return run_document_class("cda", sys.argv[1:])


def pdf2dcm() -> int:
    return run_document_class("pdf", sys.argv[1:])


def stl2dcm() -> int:
    return run_document_class("stl", sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())
