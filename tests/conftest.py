import pytest

SAMPLE = (
    "RAM 1728/7763MB (lfb 1117x4MB) IRAM 1728/7763MB (lfb 1117MB) "
    "SWAP 0/3882MB (cached 0MB) CPU [5%@1190,1%@1190,off,off,off,off] "
    "EMC_FREQ 0% GR3D_FREQ 0% AO@35.5C GPU@35.5C PMIC@100C AUX@35.5C CPU@36C "
    "thermal@35.65C VDD_IN 3757/3757 VDD_CPU_GPU_CV 197/197 VDD_SOC 1066/1066 "
    "MTS fg 12% bg 13% GR3D 14%@36"
)


class FakeSampler:
    """Stands in for Tegrastats: serves whatever line the test sets."""

    def __init__(self, line=""):
        self.line = line
        self.log_file = "/tmp/fake-tegrastats.log"
        self.running = False
        self.truncated = 0
        self.reads = 0

    def read_latest(self):
        self.reads += 1
        return self.line

    def truncate(self):
        self.truncated += 1
        self.line = ""

    def start(self, interval_ms=None, log_dir=None):
        self.running = True
        return True

    def stop(self):
        self.running = False


def schedutil(index):
    return "schedutil"


@pytest.fixture
def sample_line():
    return SAMPLE


@pytest.fixture
def fake_sampler():
    return FakeSampler(SAMPLE)
