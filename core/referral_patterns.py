"""
core/referral_patterns.py — Referred-pain screening tables.

For each body region: two or three yes/no questions that screen for a
distant pain source (cervical, visceral, vascular, neighbouring joint) plus
a static clinical note.  Questions flagged ``is_red_flag`` escalate to an
urgent red flag when answered "yes".

Read-only; consumed by ``tools.referral`` and ``engine.catalog``.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from core.models import ReferralQuestion


@dataclass(frozen=True)
class RegionReferralData:
    label: str
    questions: tuple[ReferralQuestion, ...]
    clinical_note: str


def _q(qid: str, question: str, implication: str, source: str, *, red_flag: bool = False) -> ReferralQuestion:
    return ReferralQuestion(
        id=qid,
        question=question,
        positive_implication=implication,
        source_region=source,
        is_red_flag=red_flag,
    )


GENERIC_CLINICAL_NOTE = (
    "No referral screening table for this region. Clear the joints above and "
    "below and screen for visceral or vascular causes before assuming a local "
    "musculoskeletal source."
)


REFERRAL_SCREENING: Mapping[str, RegionReferralData] = MappingProxyType({
    # ── Upper limb ──────────────────────────────────────────────────────
    "shoulder": RegionReferralData(
        label="Shoulder",
        questions=(
            _q("shoulder_cardiac_screen",
               "Do you have chest tightness, shortness of breath, or jaw discomfort along with shoulder pain?",
               "CARDIAC REFERRAL - Requires immediate medical evaluation", "cardiac", red_flag=True),
            _q("shoulder_neck_movement",
               "Does moving your neck change your shoulder symptoms?",
               "Cervical spine may be contributing", "cervical"),
            _q("shoulder_below_elbow",
               "Do your symptoms travel below the elbow into forearm or hand?",
               "Suggests cervical radiculopathy rather than local shoulder", "cervical"),
        ),
        clinical_note=(
            "RED FLAGS: Left shoulder + exertion = cardiac. Right shoulder + meals = "
            "gallbladder. Always screen cardiac before assuming MSK!"
        ),
    ),
    "elbow": RegionReferralData(
        label="Elbow",
        questions=(
            _q("elbow_neck_movement",
               "Does moving your neck affect your elbow symptoms?",
               "Cervical spine (C5-C7) may be the source", "cervical"),
            _q("elbow_thumb_tingling",
               "Do you have any tingling in your thumb, index, or middle finger?",
               "Dermatomal pattern: thumb/index=C6, middle=C7", "cervical"),
            _q("elbow_shoulder_pain",
               "Do you have any shoulder pain or difficulty reaching overhead?",
               "Shoulder dysfunction causing compensatory elbow strain", "shoulder"),
        ),
        clinical_note=(
            "Cervical radiculopathy frequently coexists with lateral epicondylalgia. "
            "If grip strengthening fails after 6 weeks, check the neck."
        ),
    ),
    "forearm": RegionReferralData(
        label="Forearm",
        questions=(
            _q("forearm_neck_movement",
               "Does moving your neck affect your forearm symptoms?",
               "Cervical spine (C6-C7) may be contributing", "cervical"),
            _q("forearm_elbow_pain",
               "Do you have any elbow pain or tenderness?",
               "Local elbow pathology referring to forearm", "elbow"),
        ),
        clinical_note="Forearm pain with negative local exam - check cervical spine and elbow.",
    ),
    "wrist": RegionReferralData(
        label="Wrist",
        questions=(
            _q("wrist_neck_effect",
               "Does neck position or movement affect your wrist/hand symptoms?",
               "Cervical component present", "cervical"),
            _q("wrist_proximal_symptoms",
               "Do you have any symptoms in your neck, shoulder, or arm?",
               "Proximal source likely - double crush possible", "cervical"),
        ),
        clinical_note="Double crush: cervical radiculopathy + carpal tunnel often coexist.",
    ),
    "hand": RegionReferralData(
        label="Hand",
        questions=(
            _q("hand_neck_movement",
               "Does neck movement change your hand symptoms?",
               "Cervical radiculopathy likely", "cervical"),
            _q("hand_arm_overhead",
               "Are symptoms worse with arms overhead or carrying heavy bags?",
               "Thoracic outlet syndrome possible", "thoracic_outlet"),
        ),
        clinical_note="Map finger distribution: thumb/index=C6, middle=C7, ring/small=C8.",
    ),
    # ── Spine and trunk ─────────────────────────────────────────────────
    "neck": RegionReferralData(
        label="Neck",
        questions=(
            _q("neck_cardiac_screen",
               "Does neck or jaw pain come on with physical exertion or stress?",
               "Exertional neck/jaw pain may be cardiac angina equivalent", "cardiac", red_flag=True),
            _q("neck_vascular",
               "Did neck pain start suddenly with any dizziness, visual changes, or difficulty speaking?",
               "VASCULAR EMERGENCY - possible carotid/vertebral dissection", "vascular", red_flag=True),
            _q("neck_upper_back",
               "Do you have stiffness or pain between your shoulder blades?",
               "Thoracic spine contributing to neck symptoms", "thoracic"),
        ),
        clinical_note=(
            "RED FLAGS: Exertional neck/jaw pain = cardiac angina. Sudden onset + neuro "
            "symptoms = vascular emergency."
        ),
    ),
    "thoracic": RegionReferralData(
        label="Thoracic spine",
        questions=(
            _q("thoracic_neck_stiffness",
               "Do you have any neck pain or stiffness?",
               "Cervical-thoracic junction involvement", "cervical"),
            _q("thoracic_breathing_pain",
               "Does deep breathing or twisting worsen your pain?",
               "Rib/costovertebral joint involvement", "rib"),
        ),
        clinical_note="Consider visceral referral if no mechanical pattern found.",
    ),
    "lower-back": RegionReferralData(
        label="Lower back",
        questions=(
            _q("lb_aaa_screen",
               "Do you feel a pulsing or throbbing sensation in your abdomen with your back pain?",
               "POSSIBLE AAA - Requires urgent vascular evaluation", "vascular_aaa", red_flag=True),
            _q("lb_kidney",
               "Do you have pain that wraps around to your side/flank, or any burning with urination?",
               "Kidney involvement possible - check urinalysis", "kidney", red_flag=True),
            _q("lb_hip_stiffness",
               "Do you have stiffness putting on socks or getting in/out of car?",
               "Hip joint may be contributing to back pain", "hip"),
        ),
        clinical_note=(
            "RED FLAGS: Pulsating abdominal pain = AAA emergency. Flank pain + fever = "
            "kidney. Always rule out visceral before treating as mechanical LBP!"
        ),
    ),
    "chest": RegionReferralData(
        label="Chest",
        questions=(
            _q("chest_cardiac_exertion",
               "Does chest pain come on with exertion (walking, stairs) and ease with rest?",
               "ANGINA PATTERN - Requires immediate cardiac evaluation", "cardiac", red_flag=True),
            _q("chest_pe_screen",
               "Do you have sudden shortness of breath, recent leg swelling, or recent long travel/surgery?",
               "PE risk factors present - urgent evaluation", "pulmonary", red_flag=True),
            _q("chest_movement_breathing",
               "Does movement, twisting, or deep breathing affect your chest pain?",
               "Mechanical/musculoskeletal origin likely", "thoracic"),
        ),
        clinical_note=(
            "CRITICAL: Always rule out cardiac and pulmonary causes first. Chest pain is "
            "cardiac until proven otherwise!"
        ),
    ),
    "abdomen": RegionReferralData(
        label="Abdomen",
        questions=(
            _q("abdomen_back_pain",
               "Do you have any mid or lower back pain?",
               "Thoracic/lumbar spine may be referring to abdomen", "thoracolumbar"),
            _q("abdomen_movement_effect",
               "Does back movement or position change affect your abdominal discomfort?",
               "Mechanical spinal component - not visceral", "thoracolumbar"),
        ),
        clinical_note=(
            "RED FLAG: Rule out visceral pathology first. Spinal referred abdominal pain "
            "is a diagnosis of exclusion."
        ),
    ),
    # ── Lower limb ──────────────────────────────────────────────────────
    "hip": RegionReferralData(
        label="Hip",
        questions=(
            _q("hip_vascular_claudication",
               "Does hip or thigh pain come on after walking and go away with rest?",
               "Vascular claudication pattern - check femoral pulses", "vascular", red_flag=True),
            _q("hip_back_movement",
               "Does bending your back forward or backward affect your hip symptoms?",
               "Lumbar spine contributing to hip symptoms", "lumbar"),
            _q("hip_si_joint",
               "Is pain at the back of your pelvis rather than the side or front of hip?",
               "SI joint dysfunction - not true hip pathology", "si_joint"),
        ),
        clinical_note=(
            'Many patients say "hip" but mean SI joint, lateral thigh, or groin. Clarify '
            "location! Claudication pattern = vascular."
        ),
    ),
    "thigh": RegionReferralData(
        label="Thigh",
        questions=(
            _q("thigh_back_relation",
               "Do you have any back pain, or does back movement affect thigh symptoms?",
               "Lumbar spine likely source (L2-L5 depending on location)", "lumbar"),
            _q("thigh_groin_stiffness",
               "Do you have any groin pain or hip stiffness?",
               "Hip pathology referring to thigh", "hip"),
            _q("thigh_below_knee",
               "Does pain extend below the knee?",
               "True radiculopathy more likely than referred pain", "lumbar"),
        ),
        clinical_note="Anterior thigh + negative hip exam = check L2-L3. Commonly missed!",
    ),
    "knee": RegionReferralData(
        label="Knee",
        questions=(
            _q("knee_dvt_bakers",
               "Did you suddenly develop calf swelling or pain after having knee pain/swelling?",
               "Baker cyst rupture or DVT - urgent evaluation", "vascular", red_flag=True),
            _q("knee_hip_groin",
               "Do you have any hip or groin pain or stiffness?",
               "Hip pathology may be referring to knee", "hip"),
            _q("knee_back_pain",
               "Do you have any back pain or stiffness?",
               "Lumbar spine (L3-L4) may be contributing", "lumbar"),
        ),
        clinical_note=(
            "CRITICAL: Hip OA commonly presents as knee pain only - always examine the hip!"
        ),
    ),
    "lower-leg": RegionReferralData(
        label="Lower leg / Calf",
        questions=(
            _q("calf_swelling",
               "Is your calf swollen, warm, or red compared to the other side?",
               "DVT MUST be ruled out - urgent evaluation", "vascular_dvt", red_flag=True),
            _q("calf_claudication",
               "Does calf pain come on after walking a specific distance and go away within minutes of rest?",
               "Classic intermittent claudication - PAD evaluation needed", "vascular_pad", red_flag=True),
            _q("calf_back_relation",
               "Do you have any back pain, or did symptoms start in back/buttock and travel down?",
               "Lumbar spine (S1) likely source - sciatica pattern", "lumbar"),
        ),
        clinical_note=(
            "RED FLAGS: Unilateral swelling = DVT until proven otherwise. Walking pain + "
            "rest relief = PAD."
        ),
    ),
    "ankle": RegionReferralData(
        label="Ankle",
        questions=(
            _q("ankle_pad_claudication",
               "Does ankle or calf pain come on after walking a specific distance and go away with rest?",
               "Intermittent claudication pattern - PAD evaluation needed", "vascular_pad", red_flag=True),
            _q("ankle_back_leg_pain",
               "Do you have any back or leg pain above the ankle?",
               "Lumbar spine may be contributing", "lumbar"),
            _q("ankle_knee_issues",
               "Do you have any knee pain or did ankle symptoms start after a knee problem?",
               "Descending kinetic chain - knee affecting ankle", "knee"),
        ),
        clinical_note=(
            "PAD RED FLAG: Pain with walking + relief with rest = claudication. Check "
            "pulses! Lateral numbness = S1."
        ),
    ),
    "foot": RegionReferralData(
        label="Foot",
        questions=(
            _q("foot_vascular_rest_pain",
               "Do you have foot pain at rest, especially at night, that improves when you hang your foot off the bed?",
               "Critical limb ischemia - URGENT vascular evaluation", "vascular_pad", red_flag=True),
            _q("foot_back_leg_pain",
               "Do you have any back or leg pain?",
               "Lumbar spine may be source (L5 or S1)", "lumbar"),
            _q("foot_sole_tingling",
               "Is your pain/tingling mainly in the sole of your foot, worse at night?",
               "Tarsal tunnel syndrome possible", "tarsal_tunnel"),
        ),
        clinical_note=(
            "PAD RED FLAG: Rest pain at night + non-healing wounds = critical ischemia. "
            "Dermatomal = lumbar."
        ),
    ),
    # ── Head ────────────────────────────────────────────────────────────
    "head": RegionReferralData(
        label="Head / Headache",
        questions=(
            _q("headache_neck_trigger",
               "Does moving your neck or sustained neck positions trigger your headache?",
               "Cervicogenic headache likely", "cervical"),
            _q("headache_neck_stiffness",
               "Do you have neck pain or stiffness along with headaches?",
               "Cervical component to headache", "cervical"),
            _q("headache_shoulder_tension",
               "Do headaches worsen with stress or shoulder tension?",
               "Upper trapezius trigger points contributing", "upper_trap"),
        ),
        clinical_note="Flexion-Rotation Test: >10 degree difference indicates C1-C2 restriction.",
    ),
})
