"""
GPU collector — NVIDIA status via nvidia-smi.

No nvidia-smi, or nvidia-smi with no devices, means "no GPU" rather than a
failure.
"""

from typing import Optional

from marvinous.collectors.base import BaseCollector, CollectorFailed, GpuStatus

QUERY_FIELDS = "name,temperature.gpu,memory.used,memory.total,utilization.gpu,power.draw"
NO_GPU_MARKERS = ("NVIDIA-SMI has failed", "No devices were found")


def parse_nvidia_csv(stdout: str) -> Optional[GpuStatus]:
    """Parse the first line of `--format=csv,noheader,nounits` output."""
    lines = [line for line in stdout.strip().splitlines() if line.strip()]
    if not lines:
        return None
    line = lines[0]
    parts = [p.strip() for p in line.split(",")]
    if len(parts) < 6:
        raise CollectorFailed(f"Expected 6 fields, got {len(parts)}: {line}")

    def _num(value: str, label: str, cast):
        try:
            return cast(float(value)) if cast is int else cast(value)
        except ValueError as e:
            raise CollectorFailed(f"Invalid {label}: {value}") from e

    try:
        power_draw = float(parts[5])
    except ValueError:
        power_draw = 0.0  # "[N/A]" on cards without power telemetry

    return GpuStatus(
        name=parts[0],
        temperature=_num(parts[1], "temperature", float),
        memory_used=_num(parts[2], "memory used", int),
        memory_total=_num(parts[3], "memory total", int),
        utilisation=_num(parts[4], "utilisation", int),
        power_draw=power_draw,
    )


class GpuCollector(BaseCollector):
    name = "gpu"
    tool = "nvidia-smi"

    def __init__(self, optional: bool = True, **kwargs):
        super().__init__(**kwargs)
        self.required = not optional

    def empty(self):
        return None

    async def collect(self) -> Optional[GpuStatus]:
        returncode, stdout, stderr = await self.run_tool(
            f"--query-gpu={QUERY_FIELDS}",
            "--format=csv,noheader,nounits",
        )
        if returncode != 0:
            if any(marker in stderr or marker in stdout for marker in NO_GPU_MARKERS):
                return None
            raise CollectorFailed(f"nvidia-smi failed: {stderr.strip()[:200]}")
        return parse_nvidia_csv(stdout)
