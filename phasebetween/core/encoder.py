"""
Motion in-betweening feature encoder.

Turns a (current, next) Container pair into one input vector and one output
vector. Every quantity is expressed relative to a coordinate frame:
- the ego-centric root of the current or next pose
- the target root (root frame of the sampled future pose)
- per-bone target frames (target bone position, target root orientation)
"""

from typing import List, Optional, Sequence

from phasebetween.config.settings import ExportConfig, PhaseMode
from phasebetween.core.container import Container
from phasebetween.core.feature_writer import FeatureWriter
from phasebetween.utils.math_utils import (
    get_forward,
    get_position,
    get_rotation,
    get_up,
    phase_vector,
    relative_direction_to,
    relative_position_to,
    signed_phase_update,
    trs,
)


class MotionInBetweeningEncoder:
    """
    Feeds input (X) and output (Y) features in a fixed order.

    Args:
        contact_bones: Bones whose contact values are written
        styles: Style labels written per key (empty disables style features)
        phase_mode: Which phase block closes each vector
    """

    def __init__(
        self,
        contact_bones: Sequence[str],
        styles: Optional[Sequence[str]] = None,
        phase_mode: PhaseMode = PhaseMode.NO_PHASES,
    ):
        self.contact_bones = list(contact_bones)
        self.styles = list(styles or [])
        self.phase_mode = phase_mode

    @classmethod
    def from_config(cls, config: ExportConfig) -> "MotionInBetweeningEncoder":
        return cls(
            contact_bones=config.resolve_contact_bones(),
            styles=config.resolve_styles(),
            phase_mode=config.phases,
        )

    def export(self, X: FeatureWriter, Y: FeatureWriter, current: Container, following: Container):
        """Feed one training example; the caller stores both vectors."""
        self.export_inputs(X, current, following)
        self.export_outputs(Y, current, following)

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def export_inputs(self, X: FeatureWriter, current: Container, following: Container):
        samples = current.time_series.samples
        pivot = current.time_series.pivot

        # Future trajectory in the target frame, with time to target
        for k in range(len(samples)):
            X.feed_xz(relative_position_to(following.root_series.get_position(k), current.target_root),
                      f"TrajectoryPosition{k + 1}")
            X.feed_xz(relative_direction_to(following.root_series.get_direction(k), current.target_root),
                      f"TrajectoryDirection{k + 1}")
            X.feed_xz(relative_direction_to(following.root_series.get_velocity(k), current.target_root),
                      f"TrajectoryVelocity{k + 1}")
            X.feed(current.target_pose.time_offset - samples[k].timestamp, f"TimeOffset{k + 1}")
            if self.styles:
                X.feed_values(following.style_series.get_styles(k, self.styles), f"Style{k + 1}")

        # Current pose in the current root frame
        self._feed_pose(X, "Bone", current.bone_names, current.posture, current.velocities, current.root)

        # Target pose in the current root frame
        self._feed_pose(X, "TargetBone", current.bone_names, current.target_pose.pose,
                        current.target_pose.velocities, current.root)

        for k in range(pivot + 1):
            X.feed_values(current.contact_series.get_contacts(k, self.contact_bones),
                          f"Contacts{k + 1}-")

        if self.phase_mode == PhaseMode.LOCAL_PHASES:
            phases = current.phase_series
            index = 0
            for k in range(len(samples)):
                for b, bone in enumerate(phases.bones):
                    vector = phase_vector(phases.phases[k, b], phases.amplitudes[k, b])
                    index += 1
                    X.feed(vector[0], f"Gating{index}-Key{k + 1}-Bone{bone}")
                    index += 1
                    X.feed(vector[1], f"Gating{index}-Key{k + 1}-Bone{bone}")
        elif self.phase_mode == PhaseMode.DEEP_PHASES:
            X.feed_values(current.deep_phase_series.get_alignment(), "PhaseSpace-")

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    def export_outputs(self, Y: FeatureWriter, current: Container, following: Container):
        samples = following.time_series.samples
        pivot = following.time_series.pivot
        root = following.root_series.transformations[pivot]
        velocity = following.root_series.velocities[pivot]

        # Root update, in the current root frame and in the target frame
        Y.feed_xz(relative_position_to(get_position(root), current.root), "RootPosition")
        Y.feed_xz(relative_direction_to(get_forward(root), current.root), "RootDirection")
        Y.feed_xz(relative_direction_to(velocity, current.root), "RootVelocity")

        Y.feed_xz(relative_position_to(get_position(root), current.target_root), "TargetRootPosition")
        Y.feed_xz(relative_direction_to(get_forward(root), current.target_root), "TargetRootDirection")
        Y.feed_xz(relative_direction_to(velocity, current.target_root), "TargetRootVelocity")

        if self.styles:
            Y.feed_values(following.style_series.get_styles(pivot, self.styles), "RootStyle")

        for k in range(pivot + 1, len(samples)):
            Y.feed_xz(relative_position_to(following.root_series.get_position(k), following.root),
                      f"TrajectoryPosition{k + 1}")
            Y.feed_xz(relative_direction_to(following.root_series.get_direction(k), following.root),
                      f"TrajectoryDirection{k + 1}")
            Y.feed_xz(relative_direction_to(following.root_series.get_velocity(k), following.root),
                      f"TrajectoryVelocity{k + 1}")

        for k in range(pivot + 1, len(samples)):
            Y.feed_xz(relative_position_to(following.root_series.get_position(k), current.target_root),
                      f"TargetTrajectoryPosition{k + 1}")
            Y.feed_xz(relative_direction_to(following.root_series.get_direction(k), current.target_root),
                      f"TargetTrajectoryDirection{k + 1}")
            Y.feed_xz(relative_direction_to(following.root_series.get_velocity(k), current.target_root),
                      f"TargetTrajectoryVelocity{k + 1}")
            if self.styles:
                Y.feed_values(following.style_series.get_styles(k, self.styles), f"Style{k + 1}")

        # Next pose in the next root frame
        self._feed_pose(Y, "Bone", following.bone_names, following.posture, following.velocities, following.root)

        # Next pose relative to each target bone, oriented like the target root
        target_rotation = get_rotation(current.target_root)
        for k, name in enumerate(following.bone_names):
            frame = trs(get_position(current.target_pose.pose[k]), target_rotation)
            self._feed_bone(Y, f"TargetBone{k + 1}{name}", following.posture[k], following.velocities[k], frame)

        Y.feed_values(following.contact_series.get_contacts(pivot, self.contact_bones), "Contacts-")

        if self.phase_mode == PhaseMode.LOCAL_PHASES:
            before, after = current.phase_series, following.phase_series
            for k in range(pivot, len(samples)):
                for b in range(len(after.bones)):
                    update = signed_phase_update(before.phases[k, b], after.phases[k, b])
                    Y.feed_vector(phase_vector(update, after.amplitudes[k, b]),
                                  f"PhaseUpdate-{k + 1}-{b + 1}")
                    Y.feed_vector(phase_vector(after.phases[k, b], after.amplitudes[k, b]),
                                  f"PhaseState-{k + 1}-{b + 1}")
        elif self.phase_mode == PhaseMode.DEEP_PHASES:
            Y.feed_values(following.deep_phase_series.get_update(), "PhaseUpdate-")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _feed_pose(self, data: FeatureWriter, prefix: str, names: List[str],
                   posture, velocities, frame):
        for k, name in enumerate(names):
            self._feed_bone(data, f"{prefix}{k + 1}{name}", posture[k], velocities[k], frame)

    @staticmethod
    def _feed_bone(data: FeatureWriter, label: str, transform, velocity, frame):
        data.feed_vector(relative_position_to(get_position(transform), frame), label + "Position")
        data.feed_vector(relative_direction_to(get_forward(transform), frame), label + "Forward")
        data.feed_vector(relative_direction_to(get_up(transform), frame), label + "Up")
        data.feed_vector(relative_direction_to(velocity, frame), label + "Velocity")
