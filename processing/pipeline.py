# processing/pipeline.py
"""
EcgPipeline — single-owner coordinator of the signal path
packet → reassemble → decode → {12 waveform buffers, primary-lead buffer}
       → (per frame) band-pass → R peaks → rhythm flag
       → (1 Hz tick) band-pass → R peaks → BPM

Not thread-safe: the owner (EcgController) serialises packet
handling and the BPM tick onto one thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from processing.detection import RPeakDetector
from processing.filters import BandpassFilter
from processing.packets import FrameDecoder, Frame, PacketReassembler
from processing.rate import RateEstimator
from processing.rhythm import NOT_ENOUGH_DATA, RhythmClassifier, RhythmResult
from utils.ring_buffer import SampleBuffer, WaveformPoint, WaveformRingBuffer

logger = logging.getLogger("EcgPipeline")

PRIMARY_LEAD = 0


@dataclass
class PipelineContext:
    """所有可變狀態集中於此，由 EcgPipeline 獨占"""
    reassembler: PacketReassembler
    decoder: FrameDecoder
    waveforms: WaveformRingBuffer
    primary: SampleBuffer
    estimator: RateEstimator
    rhythm: RhythmResult = NOT_ENOUGH_DATA
    frames_decoded: int = 0


@dataclass
class PipelineSnapshot:
    """給畫面端的唯讀快照"""
    waveforms: List[List[WaveformPoint]]
    bpm: Optional[float]
    afib: bool
    sdnn: float = 0.0
    rmssd: float = 0.0
    frames_decoded: int = 0
    pending_fragments: int = 0
    packets_dropped: int = 0

    @property
    def bpm_text(self) -> str:
        return "--" if self.bpm is None else f"{self.bpm:.1f}"


class EcgPipeline:
    def __init__(
        self,
        fs: float = 500.0,
        leads: int = 12,
        waveform_points: int = 200,
        primary_samples: int = 1500,
        bandpass: Optional[BandpassFilter] = None,
        detector: Optional[RPeakDetector] = None,
        estimator: Optional[RateEstimator] = None,
        classifier: Optional[RhythmClassifier] = None,
        reassembler: Optional[PacketReassembler] = None,
        rhythm_enabled: bool = True,
        rhythm_per_frame: bool = True,
    ):
        if fs <= 0:
            raise ValueError(f"sampling_rate 必須為正數，目前為 {fs}")
        self.fs = float(fs)
        self.bandpass = bandpass or BandpassFilter(fs=self.fs)
        self.detector = detector or RPeakDetector()
        self.classifier = classifier or RhythmClassifier(detector=self.detector)
        self.rhythm_enabled = bool(rhythm_enabled)
        self.rhythm_per_frame = bool(rhythm_per_frame)

        self.ctx = PipelineContext(
            reassembler=reassembler or PacketReassembler(),
            decoder=FrameDecoder(),
            waveforms=WaveformRingBuffer(leads, waveform_points),
            primary=SampleBuffer(primary_samples),
            estimator=estimator or RateEstimator(),
        )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "EcgPipeline":
        fs = float(cfg.get("sampling_rate", 500))
        b_cfg = cfg.get("buffers", {})
        h_cfg = cfg.get("rhythm", {})
        detector = RPeakDetector.from_config(cfg)
        return cls(
            fs=fs,
            leads=int(b_cfg.get("leads", 12)),
            waveform_points=int(b_cfg.get("waveform_points", 200)),
            primary_samples=int(b_cfg.get("primary_samples", 1500)),
            bandpass=BandpassFilter.from_config(cfg, fs),
            detector=detector,
            estimator=RateEstimator.from_config(cfg),
            classifier=RhythmClassifier.from_config(cfg, detector=detector),
            reassembler=PacketReassembler(
                max_pending_age_s=float(cfg.get("reassembly", {}).get("max_pending_age_s", 0.0))),
            rhythm_enabled=bool(h_cfg.get("enable", True)),
            rhythm_per_frame=bool(h_cfg.get("per_frame", True)),
        )

    # ── 狀態 ─────────────────────────────────────────────
    @property
    def bpm(self) -> Optional[float]:
        return self.ctx.estimator.bpm

    @property
    def afib(self) -> bool:
        return self.ctx.rhythm.flagged

    @property
    def rhythm(self) -> RhythmResult:
        return self.ctx.rhythm

    @property
    def waveforms(self) -> WaveformRingBuffer:
        return self.ctx.waveforms

    # ── 封包進來 ─────────────────────────────────────────
    def submit(self, packet: bytes) -> Optional[Frame]:
        """送入一個傳輸層封包；湊滿一個 frame 時回傳解碼結果"""
        payload = self.ctx.reassembler.submit(packet)
        if payload is None:
            return None
        frame = self.ctx.decoder.decode(payload)
        self._store(frame)
        if self.rhythm_enabled and self.rhythm_per_frame:
            self.analyse_rhythm()
        return frame

    def _store(self, frame: Frame) -> None:
        self.ctx.waveforms.push_frame(frame.sample_index, frame.leads)
        self.ctx.primary.append(frame.leads[PRIMARY_LEAD])
        self.ctx.frames_decoded += 1

    # ── 分析 ─────────────────────────────────────────────
    def analyse_rhythm(self) -> RhythmResult:
        raw = self.ctx.primary.to_array()
        filtered = self.bandpass.apply(raw)
        result = self.classifier.classify(raw, filtered, self.fs)
        if result.flagged and not self.ctx.rhythm.flagged:
            logger.warning(
                f"Potential AFib detected（SDNN={result.sdnn:.2f}, RMSSD={result.rmssd:.2f}）")
        self.ctx.rhythm = result
        return result

    def refresh_bpm(self) -> Optional[float]:
        """1 Hz 計時器呼叫：以目前緩衝重算 BPM（找不到有效 RR 時沿用上一次）"""
        raw = self.ctx.primary.to_array()
        filtered = self.bandpass.apply(raw)
        peaks = self.detector.detect(filtered)
        bpm = self.ctx.estimator.update(peaks, self.fs)
        if self.rhythm_enabled and not self.rhythm_per_frame:
            self.analyse_rhythm()
        logger.debug(f"BPM 更新：peaks={len(peaks)}, bpm={'--' if bpm is None else f'{bpm:.1f}'}")
        return bpm

    def snapshot(self) -> PipelineSnapshot:
        wf = self.ctx.waveforms
        r = self.ctx.reassembler
        return PipelineSnapshot(
            waveforms=[wf.points(i) for i in range(wf.leads)],
            bpm=self.bpm,
            afib=self.afib,
            sdnn=self.ctx.rhythm.sdnn,
            rmssd=self.ctx.rhythm.rmssd,
            frames_decoded=self.ctx.frames_decoded,
            pending_fragments=r.pending_count,
            packets_dropped=r.packets_dropped,
        )

    def reset(self) -> None:
        self.ctx.reassembler.reset()
        self.ctx.waveforms.clear()
        self.ctx.primary.clear()
        self.ctx.estimator.reset()
        self.ctx.rhythm = NOT_ENOUGH_DATA
