from __future__ import annotations

import pandas as pd
import pytest

from incidents.data import clear_cache, parse_incidents

SAMPLE_CSV = """id_insiden,tanggal_insiden,tahun,provinsi,lat,lon,sektor_pendidikan,kategori_besar,jenis_insiden,lokasi,peran_pelaku,tingkat_keparahan,status_kasus,waktu_respon_jam,hari_penyelesaian,koordinat
A1,2023-01-10,2023,DKI Jakarta,-6.2,106.8,SMA,Kekerasan seksual,Pelecehan verbal,Ruang kelas,Guru,4,Selesai,12,30,
A2,2023-01-25,2023,Jawa Barat,,,SMP,Non-seksual,Perundungan,Kantin,Siswa,2,Dalam proses,6,,"-6,9; 107,6"
A3,2023-02-03,2023,Jawa Tengah,,,Perguruan Tinggi,Kekerasan seksual,Pelecehan fisik,Asrama kampus,Dosen,5,Dilaporkan,48,,
A4,2024-03-15,2024,Bali,,,SD,Non-seksual,Hukuman fisik,Halaman sekolah,Guru,3,Selesai,8,10,
A5,,,Wakanda,,,SMA,,Pengancaman,Perpustakaan,Staf,,Dilaporkan,,,
"""


@pytest.fixture(autouse=True)
def _fresh_loader_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def sample_csv() -> str:
    return SAMPLE_CSV


@pytest.fixture
def rows(sample_csv) -> pd.DataFrame:
    return parse_incidents(sample_csv)


def _rows_from_records(records) -> pd.DataFrame:
    """Build a frame from partial records, letting the parser fill the rest."""
    return parse_incidents(pd.DataFrame(records).to_csv(index=False))


@pytest.fixture
def make_rows():
    return _rows_from_records


@pytest.fixture
def dataset_file(tmp_path, sample_csv, monkeypatch):
    path = tmp_path / "dataset.csv"
    path.write_text(sample_csv, encoding="utf-8")
    monkeypatch.setenv("INCIDENT_DATASET", str(path))
    return path
